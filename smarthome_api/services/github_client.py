"""
GitHub client for module repositories.

A module repository keeps everything the installer needs in its config/ directory:

    config/mfe-manifest.json      (required) micro-frontend wiring + module name
    config/mfe-deployment.yaml    (required) MFE Deployment/Service manifest
    config/module-fields.json     (optional) form fields for the backend service
    config/service-template.yaml  (optional) backend service manifest with {{field}} placeholders
"""
import httpx
import logging
from typing import Optional, List, Dict, Any, Tuple
from urllib.parse import urlparse

from pydantic import ValidationError

from ..schemas import GitHubRepoValidation, MfeModuleManifest

logger = logging.getLogger(__name__)

CONFIG_DIR = "config"
MFE_MANIFEST_FILE = "mfe-manifest.json"
MFE_DEPLOYMENT_FILE = "mfe-deployment.yaml"
MODULE_FIELDS_FILE = "module-fields.json"
SERVICE_TEMPLATE_FILE = "service-template.yaml"

# Tried in order when fetching raw file content
BRANCHES = ("main", "master")

INVALID_URL_ERROR = "Invalid GitHub URL. Expected format: https://github.com/owner/repo"

# Errors a single GitHub request can raise (InvalidURL is not an HTTPError)
FETCH_ERRORS = (httpx.HTTPError, httpx.InvalidURL, ValueError)


def config_path(filename: str) -> str:
    return f"{CONFIG_DIR}/{filename}"


def _is_valid_segment(segment: str) -> bool:
    return segment.isprintable() and not any(c.isspace() for c in segment)


class GitHubClient:
    """Client for reading module repositories from GitHub."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the GitHub client.

        Args:
            access_token: Optional token; public repositories work without one
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (used by tests)
        """
        self.api_base = "https://api.github.com"
        self.raw_base = "https://raw.githubusercontent.com"
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "User-Agent": "SmarthomeApi/1.0",
            "Accept": "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": "2022-11-28"
        }
        if access_token:
            self.headers["Authorization"] = f"Bearer {access_token}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport
        )

    @staticmethod
    def parse_repo_url(repo_url: str) -> Optional[Tuple[str, str]]:
        """
        Parse a GitHub repository URL to extract owner and repo name.

        Accepts https://github.com/owner/repo, github.com/owner/repo and either
        form with a trailing .git.

        Returns:
            (owner, repo) tuple, or None if the URL is not a GitHub repository URL
        """
        url = (repo_url or "").strip()
        if not url:
            return None

        if not url.startswith("http"):
            url = "https://" + url

        try:
            parsed = urlparse(url)
        except ValueError:
            return None

        if (parsed.hostname or "").lower() != "github.com":
            return None

        segments = [s for s in parsed.path.strip("/").split("/") if s]
        if len(segments) < 2:
            return None

        owner, repo = segments[0], segments[1]
        if repo.endswith(".git"):
            repo = repo[:-len(".git")]
        if not repo:
            return None

        if not all(_is_valid_segment(segment) for segment in (owner, repo)):
            return None

        return owner, repo

    async def get_directory_contents(
        self,
        owner: str,
        repo: str,
        path: str
    ) -> Optional[List[Dict[str, Any]]]:
        """
        List a directory through the contents API.

        Returns:
            List of entries, or None if the directory does not exist

        Raises:
            httpx.HTTPError: If GitHub could not be reached
            httpx.InvalidURL: If owner/repo/path cannot form a URL
            ValueError: If the response body is not JSON
        """
        url = f"{self.api_base}/repos/{owner}/{repo}/contents/{path}"

        async with self._client() as client:
            response = await client.get(url)

        if not response.is_success:
            logger.warning(f"[GITHUB] Failed to list {owner}/{repo}/{path}: HTTP {response.status_code}")
            return None

        contents = response.json()
        if not isinstance(contents, list):
            # The path is a file, not a directory
            return None
        return contents

    async def validate_module_repo(self, repo_url: str) -> GitHubRepoValidation:
        """Check that a repository has the config/ files a module needs."""
        validation = GitHubRepoValidation()

        parsed = self.parse_repo_url(repo_url)
        if parsed is None:
            validation.error = INVALID_URL_ERROR
            return validation

        validation.owner, validation.repo = parsed

        try:
            config_files = await self.get_directory_contents(validation.owner, validation.repo, CONFIG_DIR)
        except FETCH_ERRORS as e:
            logger.error(f"[GITHUB] Failed to validate repo {repo_url}: {e}")
            validation.error = f"Failed to access repository: {e}"
            return validation

        if config_files is None:
            validation.error = f"Repository does not have a '{CONFIG_DIR}' directory"
            return validation

        for entry in config_files:
            filename = (entry.get("name") or "").lower()
            if filename == MFE_MANIFEST_FILE:
                validation.has_mfe_manifest = True
            elif filename == MFE_DEPLOYMENT_FILE:
                validation.has_mfe_deployment = True
            elif filename == MODULE_FIELDS_FILE:
                validation.has_module_fields = True
            elif filename == SERVICE_TEMPLATE_FILE:
                validation.has_service_template = True

        if not validation.has_mfe_manifest:
            validation.error = f"Repository missing required file: {config_path(MFE_MANIFEST_FILE)}"
            return validation

        if not validation.has_mfe_deployment:
            validation.error = f"Repository missing required file: {config_path(MFE_DEPLOYMENT_FILE)}"
            return validation

        validation.is_valid = True
        return validation

    async def get_file_content(self, repo_url: str, file_path: str) -> Optional[str]:
        """
        Fetch a raw file, trying the 'main' branch and then 'master'.

        Returns:
            File content, or None if it could not be fetched from either branch
        """
        parsed = self.parse_repo_url(repo_url)
        if parsed is None:
            return None

        owner, repo = parsed

        try:
            async with self._client() as client:
                response = None
                for branch in BRANCHES:
                    raw_url = f"{self.raw_base}/{owner}/{repo}/{branch}/{file_path}"
                    response = await client.get(raw_url)
                    if response.is_success:
                        return response.text

            logger.warning(f"[GITHUB] Failed to get file {file_path} from {repo_url}: HTTP {response.status_code}")
            return None

        except FETCH_ERRORS as e:
            logger.error(f"[GITHUB] Error fetching file {file_path} from {repo_url}: {e}")
            return None

    async def get_mfe_manifest(self, repo_url: str) -> Optional[MfeModuleManifest]:
        """Fetch and parse config/mfe-manifest.json."""
        content = await self.get_file_content(repo_url, config_path(MFE_MANIFEST_FILE))
        if content is None:
            return None

        try:
            return MfeModuleManifest.model_validate_json(content)
        except ValidationError as e:
            logger.error(f"[GITHUB] Failed to parse {MFE_MANIFEST_FILE} from {repo_url}: {e}")
            return None


# Global instance - lazily initialized
_github_client_instance: Optional[GitHubClient] = None


def get_github_client() -> GitHubClient:
    """Get or create the global GitHub client instance."""
    global _github_client_instance
    if _github_client_instance is None:
        from ..config import get_settings

        settings = get_settings()
        _github_client_instance = GitHubClient(
            access_token=settings.github_token or None,
            timeout=settings.github_timeout_seconds
        )
    return _github_client_instance
