"""
Pytest configuration and fixtures for Fork Deployer tests.

GitHub and Heroku are replaced by in-memory fakes served through
``httpx.MockTransport`` so the real clients and their error handling are
exercised without network access.
"""

import base64
import json
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import httpx
import pytest

from fork_deployer.core.config import Settings

OFFICIAL_REPO = "tkttech/TKT-CYBER-XMD-V3"
REPO_NAME = "TKT-CYBER-XMD-V3"
PREFIX = "tkt-xmd-v3-"
NOW = datetime(2026, 1, 2, 12, 0, tzinfo=timezone.utc)


def make_session(length: int = 21, prefix: str = "TKT-CYBER~") -> str:
    """Build a session credential whose payload decodes to ``length`` bytes."""
    return prefix + base64.b64encode(b"s" * length).decode()


def official_fork(owner: str = "alice") -> dict:
    return {
        "full_name": f"{owner}/{REPO_NAME}",
        "fork": True,
        "parent": {"full_name": OFFICIAL_REPO},
    }


class FakeGitHub:
    """Fake GitHub API: one repository payload and a fixed marker-file status."""

    def __init__(self, repo: Optional[dict] = None, repo_status: int = 200, marker_status: int = 200):
        self.repo = repo if repo is not None else official_fork()
        self.repo_status = repo_status
        self.marker_status = marker_status
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if "/contents/" in request.url.path:
            if self.marker_status == 200:
                return httpx.Response(200, json={"name": "package.json", "type": "file"})
            return httpx.Response(self.marker_status, json={"message": "Not Found"})
        if self.repo_status != 200:
            return httpx.Response(self.repo_status, json={"message": "Not Found"})
        return httpx.Response(200, json=self.repo)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]


class FakeHeroku:
    """Fake Heroku platform API keeping an in-memory app list.

    ``failures`` maps ``(method, path)`` to ``(status, message)``; a path of
    ``"*"`` matches every path for that method. With ``page_size`` set the
    app listing is paginated through opaque ``Next-Range`` tokens.
    """

    def __init__(self, apps: Optional[List[dict]] = None, page_size: Optional[int] = None):
        self.apps: List[dict] = list(apps or [])
        self.page_size = page_size
        self.ranges: List[Optional[str]] = []
        self.failures: Dict[Tuple[str, str], Tuple[int, str]] = {}
        self.calls: List[Tuple[str, str, Optional[dict]]] = []

    def fail(self, method: str, path: str, status: int = 422, message: str = "boom") -> None:
        self.failures[(method, path)] = (status, message)

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        method, path = request.method, request.url.path
        self.calls.append((method, path, body))

        failure = self.failures.get((method, path)) or self.failures.get((method, "*"))
        if failure:
            status, message = failure
            return httpx.Response(status, json={"id": "invalid_params", "message": message})

        if method == "GET" and path == "/apps":
            return self._list(request)
        if method == "POST" and path == "/apps":
            app = {"name": body["name"], "created_at": NOW.isoformat().replace("+00:00", "Z")}
            self.apps.append(app)
            return httpx.Response(201, json=app)
        if method == "DELETE" and path.startswith("/apps/"):
            name = path.split("/")[2]
            self.apps = [a for a in self.apps if a["name"] != name]
            return httpx.Response(200, json={"name": name})
        if method == "PATCH" and path.endswith("/config-vars"):
            return httpx.Response(200, json=body)
        if method == "POST" and path.endswith("/builds"):
            return httpx.Response(201, json={"id": "build-1", "status": "pending"})
        return httpx.Response(404, json={"id": "not_found", "message": "Not found"})

    def _list(self, request: httpx.Request) -> httpx.Response:
        requested = request.headers.get("Range")
        self.ranges.append(requested)
        if self.page_size is None:
            return httpx.Response(200, json=self.apps)
        start = int(requested.split("=", 1)[1]) if requested and requested.startswith("offset=") else 0
        end = start + self.page_size
        page = self.apps[start:end]
        if end < len(self.apps):
            return httpx.Response(206, json=page, headers={"Next-Range": f"offset={end}"})
        return httpx.Response(200, json=page)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls_for(self, method: str) -> List[Tuple[str, str, Optional[dict]]]:
        return [c for c in self.calls if c[0] == method]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        heroku_api_key="test-heroku-key",
        reclamation_enabled=False,
        metrics_enabled=False,
        static_dir=str(tmp_path / "public"),
        log_format="console",
    )


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def fake_heroku() -> FakeHeroku:
    return FakeHeroku()
