"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request

from fork_deployer import __version__

router = APIRouter()

# Track start time
START_TIME = datetime.now(timezone.utc)


@router.get("/health")
async def health_check(request: Request) -> Dict[str, Any]:
    """Simple health check endpoint."""
    reclaimer = getattr(request.app.state, "reclaimer", None)
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": int((datetime.now(timezone.utc) - START_TIME).total_seconds()),
        "deployments_enabled": getattr(request.app.state, "pipeline", None) is not None,
        "reclamation_running": bool(reclaimer and reclaimer.running),
    }
