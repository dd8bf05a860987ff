"""Periodic deletion of owned Heroku apps past their maximum age."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import structlog
from prometheus_client import Counter

from fork_deployer.core.config import Settings
from fork_deployer.core.exceptions import (
    InstanceDeletionError,
    PlatformAPIError,
    ReclamationCycleError,
)
from fork_deployer.core.models import PlatformApp, ReclamationReport
from fork_deployer.deploy.heroku import HerokuClient
from fork_deployer.deploy.ownership import OwnershipMarker

logger = structlog.get_logger()

APPS_RECLAIMED = Counter(
    "fork_deployer_apps_reclaimed_total",
    "Owned apps deleted for exceeding the maximum age",
)

RECLAIM_FAILURES = Counter(
    "fork_deployer_reclaim_failures_total",
    "Reclamation failures",
    ["kind"],
)


class ReclamationLoop:
    """Cancellable periodic task that deletes owned apps aged ``max_age`` or more.

    The clock and Heroku client are injected so a cycle can be driven
    directly from tests with ``run_cycle()``.
    """

    def __init__(
        self,
        heroku: HerokuClient,
        marker: OwnershipMarker,
        *,
        interval_seconds: float = 6 * 60 * 60,
        max_age: timedelta = timedelta(hours=24),
        run_on_start: bool = False,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.heroku = heroku
        self.marker = marker
        self.interval_seconds = interval_seconds
        self.max_age = max_age
        self.run_on_start = run_on_start
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings, heroku: HerokuClient, **kwargs) -> "ReclamationLoop":
        return cls(
            heroku,
            OwnershipMarker(settings.app_name_prefix),
            interval_seconds=settings.reclaim_interval_seconds,
            max_age=timedelta(hours=settings.max_app_age_hours),
            run_on_start=settings.reclaim_on_startup,
            **kwargs,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop on the running event loop."""
        if self.running:
            return
        logger.info(
            "Starting reclamation loop",
            interval_seconds=self.interval_seconds,
            max_age_hours=self.max_age.total_seconds() / 3600,
            prefix=self.marker.prefix,
        )
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reclamation loop stopped")

    async def _run(self) -> None:
        if not self.run_on_start:
            await asyncio.sleep(self.interval_seconds)
        while True:
            try:
                await self.run_cycle()
            except ReclamationCycleError as e:
                RECLAIM_FAILURES.labels(kind="cycle").inc()
                logger.error("Reclamation cycle failed", error=str(e))
            except asyncio.CancelledError:
                raise
            except Exception:
                RECLAIM_FAILURES.labels(kind="cycle").inc()
                logger.exception("Unexpected error in reclamation cycle")
            await asyncio.sleep(self.interval_seconds)

    def age_of(self, app: PlatformApp, now: datetime) -> Optional[timedelta]:
        if app.created_at is None:
            return None
        created = app.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return now - created

    def is_expired(self, app: PlatformApp, now: datetime) -> bool:
        age = self.age_of(app, now)
        return age is not None and age >= self.max_age

    def plan(self, apps: List[PlatformApp], now: datetime) -> List[PlatformApp]:
        """Owned apps at or past the maximum age, in listing order."""
        return [app for app in apps if self.marker.owns(app.name) and self.is_expired(app, now)]

    async def run_cycle(self) -> ReclamationReport:
        """List apps, then delete every owned app at or past the maximum age.

        Raises:
            ReclamationCycleError: if the app listing fails; nothing is deleted
        """
        try:
            apps = await self.heroku.list_apps()
        except PlatformAPIError as e:
            raise ReclamationCycleError(f"Failed to list apps: {e}", code="list_failed") from e

        now = self.clock()
        owned = [app for app in apps if self.marker.owns(app.name)]
        expired = self.plan(apps, now)
        expired_names = {app.name for app in expired}
        report = ReclamationReport(
            checked_at=now,
            owned=len(owned),
            kept=[app.name for app in owned if app.name not in expired_names],
        )

        results = await asyncio.gather(
            *(self._delete(app, now) for app in expired),
            return_exceptions=True,
        )
        for app, result in zip(expired, results):
            if isinstance(result, InstanceDeletionError):
                RECLAIM_FAILURES.labels(kind="delete").inc()
                logger.error("Failed to reclaim app", app_name=app.name, error=str(result))
                report.failed.append(app.name)
            elif isinstance(result, BaseException):
                raise result
            else:
                report.deleted.append(app.name)

        logger.info(
            "Reclamation cycle finished",
            owned=report.owned,
            deleted=len(report.deleted),
            failed=len(report.failed),
        )
        return report

    async def _delete(self, app: PlatformApp, now: datetime) -> None:
        age = self.age_of(app, now)
        try:
            await self.heroku.delete_app(app.name)
        except PlatformAPIError as e:
            raise InstanceDeletionError(app.name, str(e)) from e
        APPS_RECLAIMED.inc()
        logger.info("Reclaimed app", app_name=app.name, age_hours=round(age.total_seconds() / 3600, 1))
