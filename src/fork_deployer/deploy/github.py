"""GitHub REST client and fork verification."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
import structlog

from fork_deployer.core.config import Settings
from fork_deployer.core.exceptions import GitHubAPIError
from fork_deployer.core.models import ForkRejection, ForkVerificationResult

logger = structlog.get_logger()


class GitHubClient:
    """Thin async client for the two GitHub endpoints the fork check needs."""

    def __init__(
        self,
        base_url: str = "https://api.github.com",
        user_agent: str = "TKT-CYBER-XMD-V3-Deployer",
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {
            "User-Agent": user_agent,
            "Accept": "application/vnd.github.v3+json",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "GitHubClient":
        return cls(
            base_url=settings.github_api_url,
            user_agent=settings.github_user_agent,
            token=settings.github_token,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def get_repo(self, owner: str, repo: str) -> Dict[str, Any]:
        """Fetch repository metadata.

        Raises:
            GitHubAPIError: on transport errors or any non-2xx response
        """
        try:
            response = await self.client.get(f"/repos/{owner}/{repo}")
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"GitHub request failed: {e}") from e

        if response.is_error:
            raise GitHubAPIError(_error_message(response), status_code=response.status_code)
        try:
            data = response.json()
        except ValueError as e:
            raise GitHubAPIError("GitHub returned a non-JSON body", status_code=response.status_code) from e
        if not isinstance(data, dict):
            raise GitHubAPIError("Unexpected repository payload", status_code=response.status_code)
        return data

    async def content_status(self, owner: str, repo: str, path: str) -> int:
        """Return the HTTP status of the contents listing for ``path``.

        A 404 is a normal answer here, so no exception is raised for it.
        """
        try:
            response = await self.client.get(f"/repos/{owner}/{repo}/contents/{path}")
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"GitHub request failed: {e}") from e
        return response.status_code


def _error_message(response: httpx.Response) -> str:
    try:
        message = response.json().get("message")
    except (ValueError, AttributeError):
        message = None
    return message or f"HTTP {response.status_code}"


async def verify_fork(
    client: GitHubClient,
    username: str,
    *,
    repo_name: str,
    official_repo: str,
    marker_path: str,
) -> ForkVerificationResult:
    """Check that ``username/repo_name`` is a fork of ``official_repo`` with the marker file.

    Two sequential calls: repository metadata, then the marker file contents.
    Fork status alone is not enough since a fork can be emptied after the
    fact, so the marker file acts as a cheap proxy for "still the expected
    project". The result is not re-checked later.
    """
    try:
        repo = await client.get_repo(username, repo_name)
    except GitHubAPIError as e:
        logger.warning("Fork verification failed", username=username, error=str(e), status=e.status_code)
        return ForkVerificationResult.rejected(ForkRejection.REPO_UNAVAILABLE)

    parent = repo.get("parent") or {}
    if not repo.get("fork") or parent.get("full_name") != official_repo:
        logger.info(
            "Repository is not a fork of the official repo",
            username=username,
            fork=bool(repo.get("fork")),
            parent=parent.get("full_name"),
        )
        return ForkVerificationResult.rejected(ForkRejection.NOT_OFFICIAL_FORK)

    try:
        status = await client.content_status(username, repo_name, marker_path)
    except GitHubAPIError as e:
        logger.warning("Marker file check failed", username=username, error=str(e))
        return ForkVerificationResult.rejected(ForkRejection.MARKER_MISSING)

    if status != 200:
        logger.info("Marker file not found in fork", username=username, marker=marker_path, status=status)
        return ForkVerificationResult.rejected(ForkRejection.MARKER_MISSING)

    return ForkVerificationResult.ok()
