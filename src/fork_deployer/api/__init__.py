"""HTTP API for Fork Deployer."""

from .health import router as health_router
from .deploy import router as deploy_router

__all__ = [
    "health_router",
    "deploy_router",
]
