"""
Manifest helpers for module workloads.

Module repositories ship plain multi-document YAML (config/mfe-deployment.yaml,
config/service-template.yaml). These helpers turn that text into dict bodies the
kubernetes client accepts, and patch them before they are sent.
"""

import logging
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)


def split_manifest(manifest: str) -> List[Dict[str, Any]]:
    """
    Parse a multi-document YAML manifest.

    Blank documents (leading/trailing '---', comments only) are dropped.
    Documents that are not mappings are logged and dropped as well.

    Raises:
        yaml.YAMLError: If any document is not valid YAML
    """
    documents = []
    for document in yaml.safe_load_all(manifest):
        if not document:
            continue
        if not isinstance(document, dict):
            logger.warning(f"[K8S] Skipping non-mapping manifest document: {str(document)[:100]}")
            continue
        documents.append(document)
    return documents


def get_resource_name(document: Dict[str, Any]) -> str:
    """Return metadata.name of a manifest document."""
    name = (document.get("metadata") or {}).get("name")
    if not name:
        raise ValueError(f"{document.get('kind', 'Resource')} manifest has no metadata.name")
    return name


def get_resource_namespace(document: Dict[str, Any], default: str) -> str:
    return (document.get("metadata") or {}).get("namespace") or default


def inject_image_pull_secret(deployment: Dict[str, Any], secret_name: str) -> bool:
    """
    Add an imagePullSecrets entry to a Deployment's pod template.

    The secret is only added when no entry with the same name exists, so
    re-applying the same manifest never duplicates it.

    Returns:
        True if the secret was added, False if it was already present
    """
    pod_spec = (
        deployment.setdefault("spec", {})
        .setdefault("template", {})
        .setdefault("spec", {})
    )
    pull_secrets = pod_spec.get("imagePullSecrets") or []
    if any(secret.get("name") == secret_name for secret in pull_secrets):
        return False

    pull_secrets.append({"name": secret_name})
    pod_spec["imagePullSecrets"] = pull_secrets
    return True


def config_map_name(base_name: str) -> str:
    """ConfigMap that belongs to a module workload (deleted together with it)."""
    return f"{base_name}-config"


def mfe_resource_name(module_name: str) -> str:
    """Deployment/Service name of a module's micro-frontend container."""
    return f"{module_name}-mfe"


def render_template(template: str, values: Optional[Dict[str, str]]) -> str:
    """
    Substitute {{key}} placeholders with their values.

    Placeholders without a value are left untouched.
    """
    result = template
    for key, value in (values or {}).items():
        result = result.replace("{{" + key + "}}", value)
    return result
