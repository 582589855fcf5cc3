"""
Module Service

Installs, configures, uninstalls and reports on modules. Composes the GitHub
client (module sources), the Kubernetes client (workloads) and the module
registry (installed state).

Lifecycle per module name:

    absent -> install -> installed (mfe_deployed true/false)
           -> configure -> installed (service_deployed)
           -> uninstall -> absent

There is no lock across calls. The registry's unique name is the only guard:
of two concurrent installs of one name exactly one insert wins. Cluster calls
are not serialized, so an install racing an uninstall of the same name, or two
configure calls for the same module, can interleave and leave the cluster and
the stored field values out of step.
"""

import logging
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..schemas import (
    InstallModuleResponse,
    InstalledModule,
    MfeDefinition,
    MfeManifest,
    ModuleField,
    ModuleFieldsConfig,
    ModuleStatusResponse,
)
from .github_client import (
    GitHubClient,
    MFE_DEPLOYMENT_FILE,
    MFE_MANIFEST_FILE,
    MODULE_FIELDS_FILE,
    SERVICE_TEMPLATE_FILE,
    config_path,
)
from .kubernetes import KubernetesClient, mfe_resource_name, render_template
from .module_registry import DuplicateModuleError, ModuleRegistry

logger = logging.getLogger(__name__)


class ModuleService:
    """Module lifecycle engine."""

    def __init__(
        self,
        k8s_client: KubernetesClient,
        github_client: GitHubClient,
        registry: ModuleRegistry
    ):
        self.k8s = k8s_client
        self.github = github_client
        self.registry = registry

    async def get_installed_modules(self) -> List[InstalledModule]:
        return await self.registry.find_all()

    async def get_installed_module(self, name: str) -> Optional[InstalledModule]:
        return await self.registry.find_by_name(name)

    # =========================================================================
    # INSTALL
    # =========================================================================

    async def _fetch_fields(self, repo_url: str) -> List[ModuleField]:
        content = await self.github.get_file_content(repo_url, config_path(MODULE_FIELDS_FILE))
        if content is None:
            return []
        try:
            return ModuleFieldsConfig.model_validate_json(content).fields
        except ValidationError as e:
            logger.warning(f"[MODULES] Failed to parse {MODULE_FIELDS_FILE} from {repo_url}: {e}")
            return []

    async def install_module(self, repo_url: str) -> InstallModuleResponse:
        """
        Install a module from a GitHub repository.

        Everything up to the cluster deploy is validation: any failure there
        rejects the install without touching state. From the deploy on, the
        module is registered even if the deploy failed, and the failure is
        reported in the response's error.
        """
        logger.info(f"[MODULES] Installing module from: {repo_url}")

        validation = await self.github.validate_module_repo(repo_url)
        if not validation.is_valid:
            return InstallModuleResponse(success=False, error=validation.error)

        manifest = await self.github.get_mfe_manifest(repo_url)
        if manifest is None:
            return InstallModuleResponse(success=False, error=f"Failed to parse {MFE_MANIFEST_FILE}")

        if await self.registry.find_by_name(manifest.name) is not None:
            return InstallModuleResponse(
                success=False,
                error=f"Module '{manifest.name}' is already installed"
            )

        fields: List[ModuleField] = []
        if validation.has_module_fields:
            fields = await self._fetch_fields(repo_url)

        service_template: Optional[str] = None
        if validation.has_service_template:
            service_template = await self.github.get_file_content(repo_url, config_path(SERVICE_TEMPLATE_FILE))

        mfe_deployment_yaml = await self.github.get_file_content(repo_url, config_path(MFE_DEPLOYMENT_FILE))
        if mfe_deployment_yaml is None:
            return InstallModuleResponse(success=False, error=f"Failed to fetch {MFE_DEPLOYMENT_FILE}")

        mfe_deployed = False
        mfe_node_port = 0
        deploy_error: Optional[str] = None

        try:
            mfe_deployed = await self.k8s.apply_yaml(mfe_deployment_yaml)
            if not mfe_deployed:
                deploy_error = "Kubernetes returned failure when applying MFE deployment"
                logger.warning(f"[MODULES] Failed to deploy MFE container for {manifest.name}")
            else:
                service_name = mfe_resource_name(manifest.name)
                node_port = await self.k8s.get_service_node_port(service_name)
                if node_port:
                    mfe_node_port = node_port
                    logger.info(f"[MODULES] MFE service {service_name} assigned NodePort: {mfe_node_port}")
        except Exception as e:
            mfe_deployed = False
            deploy_error = f"Kubernetes error: {e}"
            logger.error(f"[MODULES] Exception deploying MFE container for {manifest.name}: {e}", exc_info=True)

        module = InstalledModule(
            name=manifest.name,
            display_name=manifest.display_name,
            description=manifest.description,
            repo_url=repo_url,
            remote_entry=manifest.remote_entry,
            remote_name=manifest.remote_name,
            exposed_module=manifest.exposed_module,
            component_export=manifest.component_export,
            tile=manifest.tile,
            mfe_node_port=mfe_node_port,
            fields=fields,
            service_template=service_template,
            mfe_deployed=mfe_deployed,
            service_deployed=False
        )

        try:
            await self.registry.insert(module)
        except DuplicateModuleError as e:
            # Lost a race against a concurrent install of the same name
            logger.warning(f"[MODULES] {e}")
            return InstallModuleResponse(success=False, error=str(e))

        logger.info(f"[MODULES] Module installed: {manifest.name} from {repo_url} (MFE deployed: {mfe_deployed})")

        return InstallModuleResponse(
            success=True,
            module_name=manifest.name,
            display_name=manifest.display_name,
            requires_configuration=bool(fields) and bool(service_template),
            fields=fields or None,
            error=f"Module registered but K8s deployment failed: {deploy_error}" if deploy_error else None
        )

    # =========================================================================
    # UNINSTALL
    # =========================================================================

    async def uninstall_module(self, name: str) -> bool:
        """
        Remove a module's cluster resources, then its record.

        Both the service and the MFE deletions are attempted even if the first
        fails. The record is only removed when every attempted deletion
        succeeded, so a module is never forgotten while its workloads linger.
        """
        module = await self.registry.find_by_name(name)
        if module is None:
            logger.warning(f"[MODULES] Cannot uninstall: module '{name}' not found")
            return False

        success = True

        if module.service_deployed:
            success = await self.k8s.delete_deployment(name) and success

        if module.mfe_deployed:
            success = await self.k8s.delete_deployment(mfe_resource_name(name)) and success

        if success:
            await self.registry.delete(name)
            logger.info(f"[MODULES] Module uninstalled: {name}")
        else:
            logger.warning(f"[MODULES] Cluster cleanup for '{name}' failed, keeping module record")

        return success

    # =========================================================================
    # CONFIGURE
    # =========================================================================

    async def configure_module(self, name: str, field_values: Dict[str, str]) -> ModuleStatusResponse:
        """
        Deploy a module's backend service with the given field values.

        Missing required values are filled in from field defaults, in place, so
        the persisted values are the effective ones. Nothing is stored unless
        the rendered manifest was applied.
        """
        module = await self.registry.find_by_name(name)
        if module is None:
            return ModuleStatusResponse(module_name=name, is_deployed=False, message=f"Module '{name}' not found")

        if not module.service_template:
            return ModuleStatusResponse(
                module_name=name,
                is_deployed=True,
                is_running=True,
                message="Module has no service to configure"
            )

        for field in module.fields:
            if not field.required:
                continue
            value = field_values.get(field.name)
            if value is not None and value.strip():
                continue
            if field.default_value:
                field_values[field.name] = field.default_value
            else:
                return ModuleStatusResponse(
                    module_name=name,
                    is_deployed=False,
                    message=f"Required field '{field.name}' is missing"
                )

        service_yaml = render_template(module.service_template, field_values)
        if not await self.k8s.apply_yaml(service_yaml):
            return ModuleStatusResponse(module_name=name, is_deployed=False, message="Failed to deploy service")

        service_node_port = await self.k8s.get_service_node_port(name)
        if service_node_port:
            module.service_node_port = service_node_port
            logger.info(f"[MODULES] Service {name} assigned NodePort: {service_node_port}")

        module.service_deployed = True
        module.service_field_values = dict(field_values)
        await self.registry.update(module)

        logger.info(f"[MODULES] Module configured: {name}")

        # Pods are not running yet; callers poll status/service-ready
        return ModuleStatusResponse(
            module_name=name,
            is_deployed=True,
            is_running=False,
            service_deployed=True,
            service_running=False,
            field_values=module.service_field_values
        )

    # =========================================================================
    # STATUS
    # =========================================================================

    async def get_module_status(self, name: str) -> ModuleStatusResponse:
        module = await self.registry.find_by_name(name)
        if module is None:
            return ModuleStatusResponse(module_name=name, is_deployed=False, message=f"Module '{name}' not found")

        mfe_pod_status = await self.k8s.get_pod_status(mfe_resource_name(name))
        service_pod_status = await self.k8s.get_pod_status(name) if module.service_deployed else None

        return ModuleStatusResponse(
            module_name=name,
            is_deployed=module.mfe_deployed,
            is_running=mfe_pod_status.is_running if mfe_pod_status else False,
            service_deployed=module.service_deployed,
            service_running=service_pod_status.is_running if service_pod_status else False,
            pod_status=service_pod_status.status if service_pod_status else None,
            mfe_pod_status=mfe_pod_status.status if mfe_pod_status else None,
            field_values=module.service_field_values,
            service_node_port=module.service_node_port if module.service_node_port > 0 else None
        )

    async def get_mfe_manifest(self) -> MfeManifest:
        """Wiring for every module whose MFE container was deployed."""
        manifest = MfeManifest()
        for module in await self.registry.find_all():
            if not module.mfe_deployed:
                continue
            manifest.mfes.append(MfeDefinition(
                path=module.name,
                remote_entry=module.remote_entry,
                remote_name=module.remote_name,
                exposed_module=module.exposed_module,
                component_export=module.component_export,
                tile=module.tile,
                node_port=module.mfe_node_port
            ))
        return manifest


# Global instance - lazily initialized
_module_service_instance: Optional[ModuleService] = None


def get_module_service() -> ModuleService:
    """Get or create the global module service instance."""
    global _module_service_instance
    if _module_service_instance is None:
        from .github_client import get_github_client
        from .kubernetes import get_k8s_client
        from .module_registry import get_module_registry

        _module_service_instance = ModuleService(
            k8s_client=get_k8s_client(),
            github_client=get_github_client(),
            registry=get_module_registry()
        )
    return _module_service_instance
