"""
Known Modules Catalog

Pre-approved modules are listed in known-modules.json at the root of a catalog
repository. The listing is cached for a few minutes so the install screen does
not hit GitHub on every request; when GitHub is unreachable the last good
listing is served even after it expired.
"""

import logging
import time
from typing import Callable, List, Optional

from pydantic import ValidationError

from ..schemas import KnownModule, KnownModulesConfig
from .github_client import GitHubClient

logger = logging.getLogger(__name__)

KNOWN_MODULES_FILE = "known-modules.json"
DEFAULT_CACHE_SECONDS = 300


class KnownModulesService:
    """Cached view of the remote known-modules listing."""

    def __init__(
        self,
        github_client: GitHubClient,
        repo_url: Optional[str],
        cache_seconds: float = DEFAULT_CACHE_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.github_client = github_client
        self.repo_url = repo_url
        self.cache_seconds = cache_seconds
        self.clock = clock

        self._cached_modules: Optional[List[KnownModule]] = None
        self._cache_expiry: float = 0.0

    def get_cached(self) -> Optional[List[KnownModule]]:
        """Return the cached listing if it is still fresh, else None."""
        if self._cached_modules is not None and self.clock() < self._cache_expiry:
            return self._cached_modules
        return None

    async def refresh(self) -> Optional[List[KnownModule]]:
        """
        Fetch the listing from GitHub and replace the cache.

        Returns:
            The new listing, or None if it could not be fetched or parsed
            (the cache is left untouched in that case)
        """
        if not self.repo_url:
            return None

        logger.info(f"[KNOWN-MODULES] Fetching known modules from {self.repo_url}")
        content = await self.github_client.get_file_content(self.repo_url, KNOWN_MODULES_FILE)
        if not content:
            logger.warning(f"[KNOWN-MODULES] Failed to fetch {KNOWN_MODULES_FILE} from {self.repo_url}")
            return None

        try:
            catalog = KnownModulesConfig.model_validate_json(content)
        except ValidationError as e:
            logger.error(f"[KNOWN-MODULES] Failed to parse {KNOWN_MODULES_FILE}: {e}")
            return None

        self._cached_modules = catalog.modules
        self._cache_expiry = self.clock() + self.cache_seconds
        logger.info(f"[KNOWN-MODULES] Loaded {len(self._cached_modules)} known modules")
        return self._cached_modules

    async def get_known_modules(self) -> List[KnownModule]:
        """Known modules, served from cache when fresh and from stale cache when GitHub fails."""
        cached = self.get_cached()
        if cached is not None:
            return cached

        if not self.repo_url:
            logger.warning("[KNOWN-MODULES] known_modules_repo_url not configured, returning empty list")
            return []

        modules = await self.refresh()
        if modules is not None:
            return modules

        if self._cached_modules is not None:
            logger.warning("[KNOWN-MODULES] Returning stale cached modules")
            return self._cached_modules

        return []


# Global instance - lazily initialized
_known_modules_instance: Optional[KnownModulesService] = None


def get_known_modules_service() -> KnownModulesService:
    """Get or create the global catalog instance."""
    global _known_modules_instance
    if _known_modules_instance is None:
        from ..config import get_settings
        from .github_client import get_github_client

        settings = get_settings()
        _known_modules_instance = KnownModulesService(
            github_client=get_github_client(),
            repo_url=settings.known_modules_repo_url or None,
            cache_seconds=settings.known_modules_cache_seconds
        )
    return _known_modules_instance
