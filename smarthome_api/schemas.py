from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from typing import Optional, List, Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Serialized with camelCase keys; accepts camelCase or snake_case input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Module source files (config/ directory of a module repository)
# ============================================================================

class TileConfig(CamelModel):
    label: str
    icon: str
    color: str


class ModuleField(CamelModel):
    """A form field the operator fills in before the backend service is deployed."""
    name: str  # Placeholder key in service-template.yaml ({{name}})
    label: str
    type: str = "text"  # text, number, password, select
    required: bool = True
    default_value: Optional[str] = None
    description: Optional[str] = None
    options: Optional[List[str]] = None  # For select type

    @field_validator('default_value', mode='before')
    @classmethod
    def stringify_default(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)


class ModuleFieldsConfig(CamelModel):
    fields: List[ModuleField] = Field(default_factory=list)


class MfeModuleManifest(CamelModel):
    """Contents of config/mfe-manifest.json."""
    name: str
    display_name: str
    description: Optional[str] = None
    remote_entry: str
    remote_name: str
    exposed_module: str
    component_export: str
    tile: TileConfig
    node_port: int = 0


# ============================================================================
# Installed modules
# ============================================================================

class InstalledModule(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    name: str
    display_name: str
    description: Optional[str] = None
    repo_url: str
    installed_at: datetime = Field(default_factory=_utcnow)

    # MFE configuration
    remote_entry: str
    remote_name: str
    exposed_module: str
    component_export: str
    tile: TileConfig
    mfe_node_port: int = 0

    fields: List[ModuleField] = Field(default_factory=list)
    service_template: Optional[str] = None

    # Deployment state
    mfe_deployed: bool = False
    service_deployed: bool = False
    service_node_port: int = 0
    service_field_values: Dict[str, str] = Field(default_factory=dict)

    @field_validator('installed_at')
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        # SQLite drops the offset; stored timestamps are UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class InstallModuleRequest(CamelModel):
    repo_url: str


class InstallModuleResponse(CamelModel):
    success: bool
    error: Optional[str] = None
    module_name: Optional[str] = None
    display_name: Optional[str] = None
    requires_configuration: bool = False
    fields: Optional[List[ModuleField]] = None


def _field_value_to_str(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        # YAML spelling, not Python's True/False
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    return str(value)


class DeployModuleRequest(CamelModel):
    field_values: Dict[str, str] = Field(default_factory=dict)

    @field_validator('field_values', mode='before')
    @classmethod
    def stringify_values(cls, v):
        # Number and checkbox inputs arrive as JSON numbers/booleans from the touchscreen form
        if isinstance(v, dict):
            return {key: _field_value_to_str(value) for key, value in v.items()}
        return v


class ModuleStatusResponse(CamelModel):
    module_name: str
    is_deployed: bool = False
    is_running: bool = False
    service_deployed: bool = False
    service_running: bool = False
    pod_status: Optional[str] = None
    mfe_pod_status: Optional[str] = None
    field_values: Optional[Dict[str, str]] = None
    service_node_port: Optional[int] = None
    message: Optional[str] = None


# ============================================================================
# Repository validation / catalog
# ============================================================================

class GitHubRepoValidation(CamelModel):
    is_valid: bool = False
    error: Optional[str] = None
    owner: Optional[str] = None
    repo: Optional[str] = None
    has_mfe_manifest: bool = False
    has_mfe_deployment: bool = False
    has_module_fields: bool = False
    has_service_template: bool = False


class KnownModule(CamelModel):
    """A pre-approved module listed in the remote known-modules.json."""
    name: str
    display_name: str
    description: Optional[str] = None
    repo_url: str
    icon: Optional[str] = None


class KnownModulesConfig(CamelModel):
    modules: List[KnownModule] = Field(default_factory=list)


# ============================================================================
# Cluster state
# ============================================================================

class PodStatusInfo(CamelModel):
    is_running: bool = False
    status: Optional[str] = None


class PodLogsResponse(CamelModel):
    success: bool
    logs: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    error: Optional[str] = None


class MfeReadyResponse(CamelModel):
    ready: bool
    message: Optional[str] = None
    url: Optional[str] = None


class ServiceReadyResponse(CamelModel):
    ready: bool
    pod_status: Optional[str] = None
    node_port: Optional[int] = None
    message: Optional[str] = None


# ============================================================================
# MFE manifest consumed by the shell
# ============================================================================

class MfeDefinition(CamelModel):
    path: str  # Route path (e.g. 'spotify', 'lights')
    remote_entry: str
    remote_name: str
    exposed_module: str
    component_export: str
    tile: TileConfig
    node_port: int = 0


class MfeManifest(CamelModel):
    mfes: List[MfeDefinition] = Field(default_factory=list)


class MessageResponse(BaseModel):
    message: str
