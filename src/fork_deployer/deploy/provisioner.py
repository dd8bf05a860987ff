"""Creates and configures one Heroku app per verified deployment."""

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from fork_deployer.core.config import Settings
from fork_deployer.core.exceptions import PlatformAPIError, ProvisioningError
from fork_deployer.core.models import ProvisionedInstance
from fork_deployer.deploy.heroku import HerokuClient
from fork_deployer.deploy.ownership import OwnershipMarker

logger = structlog.get_logger()


def source_tarball_url(username: str, repo_name: str, branch: str = "main") -> str:
    return f"https://github.com/{username}/{repo_name}/tarball/{branch}"


class Provisioner:
    """Runs create app -> set config vars -> trigger build.

    There are no retries. When a later step fails after the app exists, the
    app is left for the reclamation loop unless ``rollback`` is enabled, in
    which case a single best-effort delete is attempted.
    """

    def __init__(
        self,
        heroku: HerokuClient,
        marker: OwnershipMarker,
        *,
        repo_name: str,
        region: str = "eu",
        url_template: str = "https://{name}.herokuapp.com",
        rollback: bool = False,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        rng: Optional[random.Random] = None,
    ):
        self.heroku = heroku
        self.marker = marker
        self.repo_name = repo_name
        self.region = region
        self.url_template = url_template
        self.rollback = rollback
        self.clock = clock
        self.rng = rng

    @classmethod
    def from_settings(cls, settings: Settings, heroku: HerokuClient, **kwargs) -> "Provisioner":
        return cls(
            heroku,
            OwnershipMarker(settings.app_name_prefix),
            repo_name=settings.repo_name,
            region=settings.heroku_region,
            url_template=settings.app_url_template,
            rollback=settings.rollback_failed_provisioning,
            **kwargs,
        )

    async def provision(self, username: str, session_id: str) -> ProvisionedInstance:
        created_at = self.clock()
        app_name = self.marker.new_name(created_at, self.rng)
        log = logger.bind(app_name=app_name, github_username=username)

        try:
            await self.heroku.create_app(app_name, self.region)
        except PlatformAPIError as e:
            log.error("Heroku app creation failed", error=str(e), status=e.status_code)
            raise ProvisioningError(str(e)) from e
        log.info("Heroku app created", region=self.region)

        try:
            await self.heroku.set_config_vars(
                app_name,
                {"SESSION_ID": session_id, "GITHUB_USERNAME": username},
            )
            await self.heroku.create_build(app_name, source_tarball_url(username, self.repo_name))
        except PlatformAPIError as e:
            log.error("Heroku app setup failed", error=str(e), status=e.status_code)
            if self.rollback:
                await self._rollback(app_name)
            raise ProvisioningError(str(e), app_name=app_name) from e

        log.info("Heroku build triggered")
        return ProvisionedInstance(
            name=app_name,
            url=self.url_template.format(name=app_name),
            created_at=created_at,
            source_account=username,
        )

    async def _rollback(self, app_name: str) -> None:
        try:
            await self.heroku.delete_app(app_name)
            logger.info("Rolled back partially provisioned app", app_name=app_name)
        except PlatformAPIError as e:
            # The app stays; reclamation will remove it once it is old enough.
            logger.warning("Rollback of partially provisioned app failed", app_name=app_name, error=str(e))
