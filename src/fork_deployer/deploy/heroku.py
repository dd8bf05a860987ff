"""Heroku platform API client."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import structlog

from fork_deployer.core.config import Settings
from fork_deployer.core.exceptions import ConfigurationError, PlatformAPIError
from fork_deployer.core.models import PlatformApp

logger = structlog.get_logger()

HEROKU_ACCEPT = "application/vnd.heroku+json; version=3"
HEROKU_UNREACHABLE = "Heroku API unreachable"
LIST_PAGE_SIZE = 1000


class HerokuClient:
    """Async client for the app lifecycle endpoints of the Heroku platform API.

    One instance is created per process and shared by the provisioner and the
    reclamation loop; pass a custom ``transport`` to talk to a fake API.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.heroku.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ConfigurationError("HEROKU_API_KEY is not set", code="missing_api_key")
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Content-Type": "application/json",
                "Accept": HEROKU_ACCEPT,
                "Authorization": f"Bearer {api_key}",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "HerokuClient":
        return cls(
            api_key=settings.heroku_api_key or "",
            base_url=settings.heroku_api_url,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            response = await self.client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as e:
            # Transport details stay in the log; the message may reach API clients.
            logger.warning("Heroku request failed", method=method, path=path, error=str(e))
            raise PlatformAPIError(HEROKU_UNREACHABLE) from e

        if response.is_error:
            raise PlatformAPIError(_error_message(response), status_code=response.status_code)
        return response

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._send(method, path, json)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    async def create_app(self, name: str, region: str) -> Dict[str, Any]:
        return await self._request("POST", "/apps", {"name": name, "region": region})

    async def set_config_vars(self, name: str, config_vars: Dict[str, str]) -> Dict[str, Any]:
        return await self._request("PATCH", f"/apps/{name}/config-vars", config_vars)

    async def create_build(self, name: str, source_url: str) -> Dict[str, Any]:
        return await self._request("POST", f"/apps/{name}/builds", {"source_blob": {"url": source_url}})

    async def list_apps(self) -> List[PlatformApp]:
        """List every app visible to the API key.

        Heroku answers 206 with a ``Next-Range`` header while more pages
        remain; that value is sent back as ``Range`` until it is absent.
        """
        apps: List[PlatformApp] = []
        headers: Dict[str, str] = {"Range": f"name ..; max={LIST_PAGE_SIZE}"}
        seen_ranges = set()
        while True:
            response = await self._send("GET", "/apps", headers=headers)
            try:
                data = response.json()
            except ValueError as e:
                raise PlatformAPIError("Unexpected app listing payload", status_code=response.status_code) from e
            if not isinstance(data, list):
                raise PlatformAPIError("Unexpected app listing payload", status_code=response.status_code)
            apps.extend(_parse_app(item) for item in data if _has_name(item))

            next_range = response.headers.get("Next-Range")
            if not next_range or next_range in seen_ranges:
                return apps
            seen_ranges.add(next_range)
            headers = {"Range": next_range}

    async def delete_app(self, name: str) -> None:
        await self._request("DELETE", f"/apps/{name}")


def _has_name(item: Any) -> bool:
    return isinstance(item, dict) and isinstance(item.get("name"), str) and bool(item["name"])


def _parse_app(item: Dict[str, Any]) -> PlatformApp:
    try:
        return PlatformApp(name=item["name"], created_at=item.get("created_at"))
    except ValueError:
        # Unparseable timestamp: keep the app but without an age.
        logger.warning("App has invalid created_at", app_name=item["name"], created_at=item.get("created_at"))
        return PlatformApp(name=item["name"])


def _error_message(response: httpx.Response) -> str:
    """Heroku errors carry ``{"id": ..., "message": ...}``."""
    try:
        message = response.json().get("message")
    except (ValueError, AttributeError):
        message = None
    return message or f"HTTP {response.status_code}"
