"""Main entry point for Fork Deployer."""

import signal
import sys
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from fork_deployer import __version__
from fork_deployer.api.deploy import router as deploy_router
from fork_deployer.api.frontend import setup_frontend_routes
from fork_deployer.api.health import router as health_router
from fork_deployer.api.health import health_check
from fork_deployer.api.middleware import (
    setup_error_handling,
    setup_logging_middleware,
    setup_metrics_middleware,
)
from fork_deployer.core.config import Settings
from fork_deployer.core.exceptions import ConfigurationError
from fork_deployer.deploy.github import GitHubClient
from fork_deployer.deploy.heroku import HerokuClient
from fork_deployer.deploy.pipeline import DeploymentPipeline
from fork_deployer.deploy.provisioner import Provisioner
from fork_deployer.deploy.reclaim import ReclamationLoop
from fork_deployer.utils.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = app.state.settings
    logger.info(
        "Starting Fork Deployer",
        version=__version__,
        official_repo=settings.official_repo,
        deployments_enabled=app.state.pipeline is not None,
    )

    if app.state.reclaimer is not None:
        app.state.reclaimer.start()
    else:
        logger.info("Reclamation loop disabled")

    yield

    logger.info("Shutting down Fork Deployer")
    if app.state.reclaimer is not None:
        await app.state.reclaimer.stop()
    await app.state.github.close()
    if app.state.heroku is not None:
        await app.state.heroku.close()


def create_app(
    settings: Optional[Settings] = None,
    *,
    github_transport: Optional[httpx.AsyncBaseTransport] = None,
    heroku_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Create FastAPI application.

    The transports let tests point the GitHub and Heroku clients at fake APIs.
    """
    if settings is None:
        settings = Settings()

    setup_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Fork Deployer",
        version=__version__,
        description="Deploys verified forks to Heroku and reclaims them after a day",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.github = GitHubClient.from_settings(settings, transport=github_transport)
    app.state.heroku = None
    app.state.pipeline = None
    app.state.reclaimer = None

    try:
        app.state.heroku = HerokuClient.from_settings(settings, transport=heroku_transport)
    except ConfigurationError as e:
        # Keep serving health and the front-end; /deploy answers 503.
        logger.error("Heroku client not configured", error=str(e))
    else:
        provisioner = Provisioner.from_settings(settings, app.state.heroku)
        app.state.pipeline = DeploymentPipeline.from_settings(settings, app.state.github, provisioner)
        if settings.reclamation_enabled:
            app.state.reclaimer = ReclamationLoop.from_settings(settings, app.state.heroku)

    setup_error_handling(app)
    setup_logging_middleware(app)
    setup_metrics_middleware(app)

    app.include_router(deploy_router, tags=["deploy"])
    app.include_router(health_router, prefix="/runtime", tags=["runtime"])

    @app.get("/health")
    async def top_level_health(request: Request):
        return await health_check(request)

    if settings.metrics_enabled:
        @app.get("/metrics", include_in_schema=False)
        async def metrics() -> Response:
            return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Catch-all must be registered last.
    setup_frontend_routes(app, settings.static_dir)

    return app


def run():
    """Run the application."""
    settings = Settings()

    def handle_sigterm(signum, frame):
        logger.info("Received SIGTERM, initiating graceful shutdown")
        sys.exit(0)

    signal.signal(signal.SIGTERM, handle_sigterm)

    config = uvicorn.Config(
        "fork_deployer.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_config=None,  # We handle logging ourselves
        access_log=False,  # Handled by middleware
    )

    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    run()
