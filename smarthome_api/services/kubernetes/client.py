"""
Kubernetes Client for Module Workloads

This module applies the manifests shipped by module repositories to the cluster,
removes them again on uninstall, and reads back the state the shell needs
(pod phase, NodePorts, logs).

Every apply is create-or-replace, so the same manifest can be sent for the
initial deploy and for every later reconfiguration.
"""

from kubernetes import client, config
from kubernetes.client.rest import ApiException
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ...schemas import PodLogsResponse, PodStatusInfo
from .helpers import (
    config_map_name,
    get_resource_name,
    get_resource_namespace,
    inject_image_pull_secret,
    split_manifest,
)

logger = logging.getLogger(__name__)


class KubernetesClient:
    """
    Applies and removes module resources in a single namespace.

    Supported manifest kinds are Deployment, Service and ConfigMap. Documents of
    any other kind are logged and skipped.
    """

    def __init__(self):
        """Initialize Kubernetes client with in-cluster or kubeconfig."""
        from ...config import get_settings

        self.settings = get_settings()

        try:
            # Try in-cluster config first (running on the Pi)
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes configuration")
        except config.ConfigException:
            try:
                # Fall back to kubeconfig (for development)
                context = self.settings.k8s_context or None
                config.load_kube_config(context=context)
                logger.info(f"Loaded kubeconfig for development (context: {context or 'default'})")
            except config.ConfigException as e:
                logger.error(f"Failed to load Kubernetes config: {e}")
                raise RuntimeError("Cannot load Kubernetes configuration") from e

        # Initialize API clients
        self.apps_v1 = client.AppsV1Api()
        self.core_v1 = client.CoreV1Api()

        self.namespace = self.settings.k8s_namespace
        self.image_pull_secret = self.settings.k8s_image_pull_secret

        # kind -> apply function
        self._appliers: Dict[str, Callable[[Dict[str, Any]], Awaitable[None]]] = {
            "Deployment": self.apply_deployment,
            "Service": self.apply_service,
            "ConfigMap": self.apply_config_map,
        }

        if self.image_pull_secret:
            logger.info(f"Using image pull secret: {self.image_pull_secret}")
        logger.info(f"Kubernetes client initialized - Namespace: {self.namespace}")

    # =========================================================================
    # APPLY
    # =========================================================================

    async def apply_yaml(self, manifest: str) -> bool:
        """
        Apply every document of a multi-document YAML manifest.

        Documents are applied in order. The first orchestrator error stops the
        apply; documents applied before it are not rolled back.

        Returns:
            True if every recognized document was applied, False otherwise
        """
        try:
            documents = split_manifest(manifest)
            logger.info(f"[K8S] Found {len(documents)} manifest documents to apply")

            for document in documents:
                kind = document.get("kind")
                apply_fn = self._appliers.get(kind)
                if apply_fn is None:
                    logger.warning(f"[K8S] Unsupported resource kind in manifest: {kind!r}, skipping")
                    continue
                await apply_fn(document)

            logger.info("[K8S] ✅ Applied all manifest documents")
            return True

        except ApiException as e:
            logger.error(f"[K8S] Failed to apply manifest: {e.status} {e.reason}", exc_info=True)
            return False
        except Exception as e:
            logger.error(f"[K8S] Failed to apply manifest: {e}", exc_info=True)
            return False

    async def _replace_or_create(
        self,
        kind: str,
        name: str,
        namespace: str,
        body: Dict[str, Any],
        replace_fn: Callable[..., Any],
        create_fn: Callable[..., Any]
    ) -> None:
        try:
            await asyncio.to_thread(replace_fn, name=name, namespace=namespace, body=body)
            logger.info(f"[K8S] ✅ Updated {kind}: {name}")
        except ApiException as e:
            if e.status != 404:
                raise
            await asyncio.to_thread(create_fn, namespace=namespace, body=body)
            logger.info(f"[K8S] ✅ Created {kind}: {name}")

    async def apply_deployment(self, deployment: Dict[str, Any]) -> None:
        """Create or replace a Deployment."""
        name = get_resource_name(deployment)
        namespace = get_resource_namespace(deployment, self.namespace)

        if self.image_pull_secret and inject_image_pull_secret(deployment, self.image_pull_secret):
            logger.info(f"[K8S] Added imagePullSecret '{self.image_pull_secret}' to deployment {name}")

        await self._replace_or_create(
            "deployment", name, namespace, deployment,
            self.apps_v1.replace_namespaced_deployment,
            self.apps_v1.create_namespaced_deployment
        )

    async def apply_service(self, service: Dict[str, Any]) -> None:
        """
        Create or replace a Service.

        spec.clusterIP is immutable and a replace needs the current
        resourceVersion, so both are copied from the live object first.
        """
        name = get_resource_name(service)
        namespace = get_resource_namespace(service, self.namespace)

        try:
            existing = await asyncio.to_thread(
                self.core_v1.read_namespaced_service,
                name=name,
                namespace=namespace
            )
            service.setdefault("metadata", {})["resourceVersion"] = existing.metadata.resource_version
            service.setdefault("spec", {})["clusterIP"] = existing.spec.cluster_ip

            await asyncio.to_thread(
                self.core_v1.replace_namespaced_service,
                name=name,
                namespace=namespace,
                body=service
            )
            logger.info(f"[K8S] ✅ Updated service: {name}")
        except ApiException as e:
            if e.status != 404:
                raise
            await asyncio.to_thread(
                self.core_v1.create_namespaced_service,
                namespace=namespace,
                body=service
            )
            logger.info(f"[K8S] ✅ Created service: {name}")

    async def apply_config_map(self, config_map: Dict[str, Any]) -> None:
        """Create or replace a ConfigMap."""
        name = get_resource_name(config_map)
        namespace = get_resource_namespace(config_map, self.namespace)

        await self._replace_or_create(
            "configmap", name, namespace, config_map,
            self.core_v1.replace_namespaced_config_map,
            self.core_v1.create_namespaced_config_map
        )

    # =========================================================================
    # DELETE
    # =========================================================================

    async def _delete_if_exists(self, delete_fn: Callable[..., Any], kind: str, name: str) -> None:
        try:
            await asyncio.to_thread(delete_fn, name=name, namespace=self.namespace)
            logger.info(f"[K8S] Deleted {kind}: {name}")
        except ApiException as e:
            if e.status != 404:
                raise
            logger.debug(f"[K8S] No {kind} named {name}, nothing to delete")

    async def delete_deployment(self, name: str) -> bool:
        """
        Delete a workload together with its Service and '<name>-config' ConfigMap.

        Missing resources are skipped.

        Returns:
            False if the API reported an error other than not-found
        """
        try:
            await self._delete_if_exists(self.apps_v1.delete_namespaced_deployment, "deployment", name)
            await self._delete_if_exists(self.core_v1.delete_namespaced_service, "service", name)
            await self._delete_if_exists(
                self.core_v1.delete_namespaced_config_map, "configmap", config_map_name(name)
            )
            return True
        except Exception as e:
            logger.error(f"[K8S] Failed to delete deployment {name}: {e}", exc_info=True)
            return False

    # =========================================================================
    # STATUS
    # =========================================================================

    async def get_service_node_port(self, service_name: str) -> Optional[int]:
        """Return the first NodePort assigned to a Service, or None."""
        try:
            service = await asyncio.to_thread(
                self.core_v1.read_namespaced_service,
                name=service_name,
                namespace=self.namespace
            )
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"[K8S] Service {service_name} not found")
            else:
                logger.error(f"[K8S] Failed to read service {service_name}: {e.status} {e.reason}")
            return None
        except Exception as e:
            logger.error(f"[K8S] Failed to read service {service_name}: {e}", exc_info=True)
            return None

        ports = service.spec.ports if service.spec and service.spec.ports else []
        for port in ports:
            if port.node_port:
                return port.node_port
        return None

    async def _get_first_pod(self, deployment_name: str) -> Optional[client.V1Pod]:
        pods = await asyncio.to_thread(
            self.core_v1.list_namespaced_pod,
            namespace=self.namespace,
            label_selector=f"app={deployment_name}"
        )
        return pods.items[0] if pods.items else None

    async def get_pod_status(self, deployment_name: str) -> Optional[PodStatusInfo]:
        """
        Get the phase of the first pod labelled app=<deployment_name>.

        Returns None when there is no such pod. API failures are logged and
        also return None.
        """
        try:
            pod = await self._get_first_pod(deployment_name)
        except Exception as e:
            logger.error(f"[K8S] Failed to get pod status for {deployment_name}: {e}")
            return None

        if pod is None:
            return None

        phase = pod.status.phase if pod.status else None
        return PodStatusInfo(is_running=phase == "Running", status=phase)

    async def get_pod_logs(
        self,
        deployment_name: str,
        since_seconds: Optional[int] = None,
        tail_lines: Optional[int] = None
    ) -> PodLogsResponse:
        """Read recent log lines of the first pod labelled app=<deployment_name>."""
        try:
            pod = await self._get_first_pod(deployment_name)
            if pod is None:
                return PodLogsResponse(success=False, error=f"No pod found for '{deployment_name}'")

            kwargs: Dict[str, Any] = {"timestamps": True}
            if since_seconds:
                kwargs["since_seconds"] = since_seconds
            if tail_lines:
                kwargs["tail_lines"] = tail_lines

            logs = await asyncio.to_thread(
                self.core_v1.read_namespaced_pod_log,
                name=pod.metadata.name,
                namespace=self.namespace,
                **kwargs
            )
            return PodLogsResponse(success=True, logs=logs)

        except ApiException as e:
            logger.error(f"[K8S] Failed to read logs for {deployment_name}: {e.status} {e.reason}")
            return PodLogsResponse(success=False, error=f"Failed to read logs: {e.reason}")
        except Exception as e:
            logger.error(f"[K8S] Failed to read logs for {deployment_name}: {e}", exc_info=True)
            return PodLogsResponse(success=False, error=f"Failed to read logs: {e}")


# Global instance - lazily initialized
_k8s_client_instance: Optional[KubernetesClient] = None


def get_k8s_client() -> KubernetesClient:
    """Get or create the global Kubernetes client instance."""
    global _k8s_client_instance
    if _k8s_client_instance is None:
        _k8s_client_instance = KubernetesClient()
    return _k8s_client_instance
