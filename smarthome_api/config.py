from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    # Database - embedded SQLite file next to the application
    database_url: str = "sqlite+aiosqlite:///./smarthome.db"

    # Flat JSON file written by older releases (name -> module record)
    # Migrated once into the database, then renamed to <file>.bak
    legacy_modules_file: str = "installed-modules.json"

    # Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = "INFO"

    # CORS Configuration
    # Comma-separated list of allowed origins (touchscreen shell + MFE dev servers)
    cors_origins: str = ""

    @property
    def cors_origin_list(self) -> List[str]:
        """Parsed list of allowed CORS origins."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ==========================================================================
    # Kubernetes Settings
    # ==========================================================================
    # All module workloads live in this namespace unless a manifest names its own
    k8s_namespace: str = "smarthome"

    # Pull secret injected into every Deployment's pod template (empty = none)
    k8s_image_pull_secret: str = ""

    # kubeconfig context to use when not running in-cluster (empty = current context)
    k8s_context: str = ""

    # ==========================================================================
    # GitHub / Module Sources
    # ==========================================================================
    # Repository holding known-modules.json (empty = no catalog)
    known_modules_repo_url: str = ""
    known_modules_cache_seconds: int = 300

    # Optional token to raise the GitHub API rate limit
    github_token: str = ""
    github_timeout_seconds: float = 10.0

    # ==========================================================================
    # Micro-frontend Settings
    # ==========================================================================
    # Base URL (scheme + host) used to build remoteEntry URLs in the MFE manifest
    # Empty = derive from the incoming request host
    mfe_base_url: str = ""

    # Timeout for the remoteEntry reachability probe
    mfe_check_timeout_seconds: float = 5.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields from .env file
        case_sensitive = False  # Allow lowercase env vars to match uppercase field names


@lru_cache()
def get_settings():
    return Settings()
