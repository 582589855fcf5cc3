"""
Modules API Router.

Install, configure, uninstall and monitor modules. Business rules live in
ModuleService; this router maps its results onto HTTP status codes and adds
the readiness probes the touchscreen shell polls after an install/configure.
"""

import logging
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from ..config import get_settings
from ..schemas import (
    DeployModuleRequest,
    GitHubRepoValidation,
    InstallModuleRequest,
    InstallModuleResponse,
    InstalledModule,
    KnownModule,
    MessageResponse,
    MfeReadyResponse,
    ModuleStatusResponse,
    PodLogsResponse,
    ServiceReadyResponse,
)
from ..services.github_client import GitHubClient, get_github_client
from ..services.known_modules import KnownModulesService, get_known_modules_service
from ..services.kubernetes import KubernetesClient, get_k8s_client
from ..services.module_service import ModuleService, get_module_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/modules", tags=["modules"])


async def get_http_client():
    """HTTP client for probing MFE containers."""
    settings = get_settings()
    async with httpx.AsyncClient(timeout=settings.mfe_check_timeout_seconds) as client:
        yield client


def _json(model, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=model.model_dump(mode="json", by_alias=True))


@router.get("", response_model=List[InstalledModule])
async def list_modules(module_service: ModuleService = Depends(get_module_service)):
    """Get all installed modules."""
    return await module_service.get_installed_modules()


@router.get("/known", response_model=List[KnownModule])
async def list_known_modules(
    module_service: ModuleService = Depends(get_module_service),
    known_modules: KnownModulesService = Depends(get_known_modules_service)
):
    """Get known (pre-approved) modules that are not installed yet."""
    catalog = await known_modules.get_known_modules()
    installed_names = {module.name for module in await module_service.get_installed_modules()}
    return [module for module in catalog if module.name not in installed_names]


@router.get("/{name}", response_model=InstalledModule)
async def get_module(name: str, module_service: ModuleService = Depends(get_module_service)):
    """Get a specific installed module."""
    module = await module_service.get_installed_module(name)
    if module is None:
        return _json(MessageResponse(message=f"Module '{name}' not found"), status.HTTP_404_NOT_FOUND)
    return module


@router.post("/validate", response_model=GitHubRepoValidation)
async def validate_repo(
    request: InstallModuleRequest,
    github: GitHubClient = Depends(get_github_client)
):
    """Validate a GitHub repository for module installation."""
    return await github.validate_module_repo(request.repo_url)


@router.post("/install", response_model=InstallModuleResponse)
async def install_module(
    request: InstallModuleRequest,
    module_service: ModuleService = Depends(get_module_service)
):
    """Install a module from a GitHub repository."""
    result = await module_service.install_module(request.repo_url)
    if not result.success:
        return _json(result, status.HTTP_400_BAD_REQUEST)
    return result


@router.delete("/{name}", response_model=MessageResponse)
async def uninstall_module(name: str, module_service: ModuleService = Depends(get_module_service)):
    """Uninstall a module."""
    logger.info(f"[MODULES] Uninstalling module: {name}")
    if not await module_service.uninstall_module(name):
        return _json(
            MessageResponse(message=f"Failed to uninstall module '{name}'"),
            status.HTTP_500_INTERNAL_SERVER_ERROR
        )
    return MessageResponse(message=f"Module '{name}' uninstalled successfully")


@router.get("/{name}/status", response_model=ModuleStatusResponse)
async def get_module_status(name: str, module_service: ModuleService = Depends(get_module_service)):
    """Get deployment and pod status of a module."""
    return await module_service.get_module_status(name)


@router.post("/{name}/configure", response_model=ModuleStatusResponse)
async def configure_module(
    name: str,
    request: DeployModuleRequest,
    module_service: ModuleService = Depends(get_module_service)
):
    """Configure a module's service (deploy with field values)."""
    logger.info(f"[MODULES] Configuring module: {name}")
    result = await module_service.configure_module(name, request.field_values)
    if not result.is_deployed:
        return _json(result, status.HTTP_400_BAD_REQUEST)
    return result


@router.get("/{name}/mfe-ready", response_model=MfeReadyResponse)
async def check_mfe_ready(
    name: str,
    request: Request,
    module_service: ModuleService = Depends(get_module_service),
    http_client: httpx.AsyncClient = Depends(get_http_client)
):
    """Check if a module's MFE is ready (remoteEntry is downloadable)."""
    module = await module_service.get_installed_module(name)
    if module is None:
        return MfeReadyResponse(ready=False, message="Module not found")

    if not module.mfe_deployed or module.mfe_node_port <= 0:
        return MfeReadyResponse(ready=False, message="MFE not deployed")

    url = f"http://{request.url.hostname}:{module.mfe_node_port}/{module.remote_entry.lstrip('/')}"

    try:
        logger.debug(f"[MODULES] Checking MFE readiness at {url}")
        response = await http_client.get(url)
    except httpx.TimeoutException:
        return MfeReadyResponse(ready=False, message="Request timeout", url=url)
    except httpx.HTTPError as e:
        logger.debug(f"[MODULES] MFE not ready at {url}: {e}")
        return MfeReadyResponse(ready=False, message="Connection failed", url=url)

    if response.is_success:
        return MfeReadyResponse(ready=True, url=url)
    return MfeReadyResponse(ready=False, message=f"HTTP {response.status_code}", url=url)


@router.get("/{name}/service-ready", response_model=ServiceReadyResponse)
async def check_service_ready(
    name: str,
    module_service: ModuleService = Depends(get_module_service),
    k8s: KubernetesClient = Depends(get_k8s_client)
):
    """Check if a module's service is ready (pod running with NodePort)."""
    module = await module_service.get_installed_module(name)
    if module is None:
        return ServiceReadyResponse(ready=False, message="Module not found")

    if not module.service_deployed:
        return ServiceReadyResponse(ready=False, message="Service not deployed")

    pod_status = await k8s.get_pod_status(name)
    if pod_status is None:
        return ServiceReadyResponse(ready=False, pod_status="NotFound", message="Pod not found")

    if not pod_status.is_running:
        return ServiceReadyResponse(
            ready=False,
            pod_status=pod_status.status,
            message=f"Pod is {pod_status.status}"
        )

    node_port = module.service_node_port
    if node_port <= 0:
        node_port = await k8s.get_service_node_port(name) or 0

    if node_port <= 0:
        return ServiceReadyResponse(
            ready=False,
            pod_status=pod_status.status,
            message="NodePort not assigned yet"
        )

    return ServiceReadyResponse(ready=True, pod_status=pod_status.status, node_port=node_port)


@router.get("/{name}/logs", response_model=PodLogsResponse)
async def get_pod_logs(
    name: str,
    since_seconds: Optional[int] = Query(None, alias="sinceSeconds", ge=1),
    tail_lines: Optional[int] = Query(None, alias="tailLines", ge=1),
    module_service: ModuleService = Depends(get_module_service),
    k8s: KubernetesClient = Depends(get_k8s_client)
):
    """Get logs from a module's service pod."""
    module = await module_service.get_installed_module(name)
    if module is None:
        return PodLogsResponse(success=False, error="Module not found")

    if not module.service_deployed:
        return PodLogsResponse(success=False, error="Service not deployed")

    return await k8s.get_pod_logs(name, since_seconds=since_seconds, tail_lines=tail_lines)
