from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON
from sqlalchemy.sql import func
from .database import Base


class ModuleRecord(Base):
    """An installed module. The name is the primary key so the store enforces uniqueness."""
    __tablename__ = "modules"

    name = Column(String, primary_key=True)  # From mfe-manifest.json, never changes
    display_name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    repo_url = Column(String(500), nullable=False)
    installed_at = Column(DateTime(timezone=True), server_default=func.now())

    # Micro-frontend wiring
    remote_entry = Column(String, nullable=False)  # Path to remoteEntry.json inside the MFE container
    remote_name = Column(String, nullable=False)
    exposed_module = Column(String, nullable=False)
    component_export = Column(String, nullable=False)
    tile = Column(JSON, nullable=False)  # {"label", "icon", "color"}
    mfe_node_port = Column(Integer, default=0, nullable=False)  # 0 = unassigned

    # Optional configuration (module-fields.json + service-template.yaml)
    fields = Column(JSON, nullable=False, default=list)
    service_template = Column(Text, nullable=True)

    # Deployment state
    mfe_deployed = Column(Boolean, default=False, nullable=False)
    service_deployed = Column(Boolean, default=False, nullable=False)
    service_node_port = Column(Integer, default=0, nullable=False)  # 0 = unassigned
    service_field_values = Column(JSON, nullable=False, default=dict)
