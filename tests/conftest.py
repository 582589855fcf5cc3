"""
Test configuration and fixtures for pytest.

Fixtures include: a Kubernetes client with mocked API objects, a registry on a
temporary SQLite file, a mocked GitHub client, and sample module files.
"""

import sys
import os
from pathlib import Path
import pytest
from unittest.mock import Mock, AsyncMock, patch

# Add the project root to sys.path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))


def pytest_configure(config):
    """
    Pytest hook called before test collection.
    Sets up test environment variables and registers custom markers.
    """
    # CRITICAL: Set test environment variables BEFORE any app imports
    os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
    os.environ["K8S_NAMESPACE"] = "smarthome"
    os.environ["K8S_IMAGE_PULL_SECRET"] = ""
    os.environ["KNOWN_MODULES_REPO_URL"] = ""
    os.environ["MFE_BASE_URL"] = ""

    # Import and clear settings cache after env vars are set
    from smarthome_api.config import get_settings
    get_settings.cache_clear()

    # Register custom markers
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "kubernetes: mark test as exercising the Kubernetes client")


@pytest.fixture
def k8s_client():
    """KubernetesClient with mocked AppsV1Api/CoreV1Api."""
    from smarthome_api.services.kubernetes.client import KubernetesClient

    with patch('smarthome_api.services.kubernetes.client.config'):
        k8s = KubernetesClient()
    k8s.apps_v1 = Mock()
    k8s.core_v1 = Mock()
    k8s.image_pull_secret = ""
    return k8s


@pytest.fixture
async def registry(tmp_path):
    """ModuleRegistry backed by a fresh SQLite file."""
    from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
    from smarthome_api.database import Base
    from smarthome_api.services.module_registry import ModuleRegistry

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'modules.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield ModuleRegistry(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))

    await engine.dispose()


@pytest.fixture
def mock_github():
    """GitHubClient mock serving a valid 'lights' module repository."""
    from smarthome_api.schemas import GitHubRepoValidation, MfeModuleManifest

    github = Mock()
    github.validate_module_repo = AsyncMock(return_value=GitHubRepoValidation(
        is_valid=True,
        owner="smarthome",
        repo="lights-module",
        has_mfe_manifest=True,
        has_mfe_deployment=True
    ))
    github.get_mfe_manifest = AsyncMock(return_value=MfeModuleManifest(**SAMPLE_MANIFEST))
    github.get_file_content = AsyncMock(return_value=MFE_DEPLOYMENT_YAML)
    return github


@pytest.fixture
def mock_k8s():
    """KubernetesClient mock where every cluster call succeeds."""
    k8s = Mock()
    k8s.apply_yaml = AsyncMock(return_value=True)
    k8s.delete_deployment = AsyncMock(return_value=True)
    k8s.get_service_node_port = AsyncMock(return_value=30301)
    k8s.get_pod_status = AsyncMock(return_value=None)
    k8s.get_pod_logs = AsyncMock()
    return k8s


@pytest.fixture
def make_module():
    """Factory for InstalledModule records."""
    from smarthome_api.schemas import InstalledModule

    def _make(**overrides):
        data = {
            "name": "lights",
            "display_name": "Lights",
            "repo_url": "https://github.com/smarthome/lights-module",
            "remote_entry": "/remoteEntry.json",
            "remote_name": "lights",
            "exposed_module": "./Component",
            "component_export": "LightsComponent",
            "tile": {"label": "Lights", "icon": "lightbulb", "color": "#ffcc00"},
        }
        data.update(overrides)
        return InstalledModule(**data)

    return _make


SAMPLE_MANIFEST = {
    "name": "lights",
    "displayName": "Lights",
    "description": "Hue light control",
    "remoteEntry": "/remoteEntry.json",
    "remoteName": "lights",
    "exposedModule": "./Component",
    "componentExport": "LightsComponent",
    "tile": {"label": "Lights", "icon": "lightbulb", "color": "#ffcc00"},
}

MFE_DEPLOYMENT_YAML = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: lights-mfe
spec:
  replicas: 1
  selector:
    matchLabels:
      app: lights-mfe
  template:
    metadata:
      labels:
        app: lights-mfe
    spec:
      containers:
        - name: mfe
          image: ghcr.io/smarthome/lights-mfe:latest
---
apiVersion: v1
kind: Service
metadata:
  name: lights-mfe
spec:
  type: NodePort
  selector:
    app: lights-mfe
  ports:
    - port: 80
"""

SERVICE_TEMPLATE_YAML = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: lights-config
data:
  HUE_BRIDGE: "{{bridge_ip}}"
  POLL_SECONDS: "{{poll_seconds}}"
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: lights
spec:
  template:
    spec:
      containers:
        - name: lights
          image: ghcr.io/smarthome/lights:latest
"""
