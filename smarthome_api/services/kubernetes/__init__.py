"""
Kubernetes access for module workloads.

- KubernetesClient: create-or-replace apply, cascading delete, pod/port/log lookups
- helpers: manifest parsing, pull secret injection, naming conventions, template rendering
"""

from .client import KubernetesClient, get_k8s_client
from .helpers import (
    split_manifest,
    inject_image_pull_secret,
    config_map_name,
    mfe_resource_name,
    render_template,
)

__all__ = [
    "KubernetesClient",
    "get_k8s_client",
    "split_manifest",
    "inject_image_pull_secret",
    "config_map_name",
    "mfe_resource_name",
    "render_template",
]
