"""CLI entrypoints (fork-deployer serve, fork-deployer reclaim)."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional

import httpx


async def _reclaim_once(
    dry_run: bool,
    settings=None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """Run one reclamation cycle, or with ``dry_run`` only print what it would delete.

    Returns the process exit code.
    """
    import structlog

    from fork_deployer.core.config import Settings
    from fork_deployer.core.exceptions import ConfigurationError, PlatformAPIError, ReclamationCycleError
    from fork_deployer.deploy.heroku import HerokuClient
    from fork_deployer.deploy.reclaim import ReclamationLoop
    from fork_deployer.utils.logging import setup_logging

    settings = settings or Settings()
    setup_logging(settings.log_level, settings.log_format)
    logger = structlog.get_logger()

    try:
        heroku = HerokuClient.from_settings(settings, transport=transport)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    reclaimer = ReclamationLoop.from_settings(settings, heroku)
    try:
        if dry_run:
            apps = await heroku.list_apps()
            for app in reclaimer.plan(apps, reclaimer.clock()):
                print(app.name)
            return 0
        report = await reclaimer.run_cycle()
    except (ReclamationCycleError, PlatformAPIError) as e:
        logger.error("Reclamation cycle failed", error=str(e))
        return 1
    finally:
        await heroku.close()

    print(report.model_dump_json(indent=2))
    return 1 if report.failed else 0


def main():
    parser = argparse.ArgumentParser(prog="fork-deployer", description="Fork-gated Heroku deployer")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("serve", help="Run the HTTP service (default)")

    cmd_reclaim = sub.add_parser("reclaim", help="Run a single reclamation cycle and exit")
    cmd_reclaim.add_argument("--dry-run", action="store_true", help="Only print apps that would be deleted")

    args = parser.parse_args()

    if args.cmd == "reclaim":
        sys.exit(asyncio.run(_reclaim_once(args.dry_run)))

    from fork_deployer.main import run
    run()


if __name__ == "__main__":
    main()
