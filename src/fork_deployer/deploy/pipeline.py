"""Deployment pipeline: format check -> fork check -> session check -> provision.

Each stage either returns normally or raises a ``DeploymentError`` subclass
that already knows its HTTP status and response body. Stages run strictly in
order and the first failure ends the request; nothing is retried.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Tuple

import structlog
from prometheus_client import Counter

from fork_deployer.core.config import Settings
from fork_deployer.core.exceptions import (
    DeploymentError,
    ForkNotVerifiedError,
    InputFormatError,
    InvalidSessionError,
    ProvisioningError,
)
from fork_deployer.core.models import DeploymentOutcome, DeploymentRequest, ProvisionedInstance
from fork_deployer.deploy.github import GitHubClient, verify_fork
from fork_deployer.deploy.provisioner import Provisioner
from fork_deployer.deploy.session import is_valid_session
from fork_deployer.utils.logging import bind_deployment_context

logger = structlog.get_logger()

DEPLOYMENT_STAGE_FAILURES = Counter(
    "fork_deployer_stage_failures_total",
    "Deployments rejected, by pipeline stage",
    ["stage"],
)

DEPLOYMENTS_COMPLETED = Counter(
    "fork_deployer_deployments_total",
    "Deployments that reached a triggered build",
)

# GitHub account names: letters, digits, hyphen, underscore, 1-39 characters.
USERNAME_RE = re.compile(r"^[A-Za-z0-9_-]{1,39}$")


class Stage(str, Enum):
    FORMAT_CHECK = "format_check"
    FORK_CHECK = "fork_check"
    SESSION_CHECK = "session_check"
    PROVISION = "provision"


@dataclass
class DeploymentContext:
    """State threaded through the stages of one request."""

    username: str
    session_id: str
    instance: Optional[ProvisionedInstance] = None
    completed: List[Stage] = field(default_factory=list)


def validate_username(username: object) -> bool:
    return isinstance(username, str) and USERNAME_RE.fullmatch(username) is not None


def _as_str(value: Any) -> str:
    # Non-string wire values fail the matching stage check.
    return value if isinstance(value, str) else ""


class DeploymentPipeline:
    """Runs the verification stages and provisioning for a single request."""

    def __init__(
        self,
        github: GitHubClient,
        provisioner: Provisioner,
        *,
        official_repo: str,
        repo_name: str,
        marker_path: str,
        session_prefix: str,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.github = github
        self.provisioner = provisioner
        self.official_repo = official_repo
        self.repo_name = repo_name
        self.marker_path = marker_path
        self.session_prefix = session_prefix
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, github: GitHubClient, provisioner: Provisioner) -> "DeploymentPipeline":
        return cls(
            github,
            provisioner,
            official_repo=settings.official_repo,
            repo_name=settings.repo_name,
            marker_path=settings.marker_path,
            session_prefix=settings.session_prefix,
        )

    @property
    def official_repo_url(self) -> str:
        return f"https://github.com/{self.official_repo}"

    def stages(self) -> List[Tuple[Stage, Callable[[DeploymentContext], Awaitable[None]]]]:
        return [
            (Stage.FORMAT_CHECK, self.check_format),
            (Stage.FORK_CHECK, self.check_fork),
            (Stage.SESSION_CHECK, self.check_session),
            (Stage.PROVISION, self.provision),
        ]

    async def run(self, request: DeploymentRequest) -> DeploymentOutcome:
        """Run every stage in order.

        Raises:
            DeploymentError: from the first stage that fails
        """
        ctx = DeploymentContext(
            username=_as_str(request.github_username),
            session_id=_as_str(request.session_id),
        )
        if validate_username(ctx.username):
            bind_deployment_context(github_username=ctx.username)

        for stage, step in self.stages():
            try:
                await step(ctx)
            except DeploymentError as e:
                DEPLOYMENT_STAGE_FAILURES.labels(stage=stage.value).inc()
                logger.warning("Deployment rejected", stage=stage.value, code=e.code, error=str(e))
                raise
            ctx.completed.append(stage)
            logger.debug("Deployment stage passed", stage=stage.value)

        if ctx.instance is None:
            raise ProvisioningError("Provisioning finished without an app")
        DEPLOYMENTS_COMPLETED.inc()
        logger.info("Deployment completed", app_name=ctx.instance.name, url=ctx.instance.url)
        return DeploymentOutcome(
            url=ctx.instance.url,
            appName=ctx.instance.name,
            deployment_time=self.clock(),
        )

    async def check_format(self, ctx: DeploymentContext) -> None:
        if not validate_username(ctx.username):
            raise InputFormatError()

    async def check_fork(self, ctx: DeploymentContext) -> None:
        result = await verify_fork(
            self.github,
            ctx.username,
            repo_name=self.repo_name,
            official_repo=self.official_repo,
            marker_path=self.marker_path,
        )
        if not result:
            raise ForkNotVerifiedError(
                official_repo_url=self.official_repo_url,
                fork_url=f"{self.official_repo_url}/fork",
                reason=result.reason.value if result.reason else None,
            )

    async def check_session(self, ctx: DeploymentContext) -> None:
        if not is_valid_session(ctx.session_id, self.session_prefix):
            raise InvalidSessionError(self.session_prefix)

    async def provision(self, ctx: DeploymentContext) -> None:
        ctx.instance = await self.provisioner.provision(ctx.username, ctx.session_id)
