"""
MFE manifest router.

The touchscreen shell loads this manifest at startup to discover which
micro-frontends to federate and where their remoteEntry files are served.
"""

import logging

from fastapi import APIRouter, Depends, Request

from ..config import get_settings
from ..schemas import MfeManifest
from ..services.module_service import ModuleService, get_module_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/mfe", tags=["mfe"])


def build_remote_entry_url(node_port: int, remote_entry: str, base_host: str) -> str:
    """
    Build the absolute remoteEntry URL for an MFE served on a NodePort.

    Absolute URLs are returned unchanged. Without a NodePort only the path is
    returned.
    """
    if remote_entry.startswith("http://") or remote_entry.startswith("https://"):
        return remote_entry

    if not remote_entry.startswith("/"):
        remote_entry = "/" + remote_entry

    if node_port <= 0:
        logger.warning(f"[MFE] Module has no NodePort assigned, using path only: {remote_entry}")
        return remote_entry

    return f"{base_host.rstrip('/')}:{node_port}{remote_entry}"


@router.get("/manifest", response_model=MfeManifest)
async def get_manifest(
    request: Request,
    module_service: ModuleService = Depends(get_module_service)
):
    """Get the MFE manifest with all deployed micro-frontends."""
    manifest = await module_service.get_mfe_manifest()

    # MFE_BASE_URL wins; otherwise use the host the shell reached us on
    # (localhost in development, the Pi's address in production)
    settings = get_settings()
    host = settings.mfe_base_url or f"http://{request.url.hostname}"

    for mfe in manifest.mfes:
        mfe.remote_entry = build_remote_entry_url(mfe.node_port, mfe.remote_entry, host)

    logger.debug(f"[MFE] Returning MFE manifest with {len(manifest.mfes)} deployed modules (host={host})")
    return manifest
