"""Deploy API: verify a fork and provision a Heroku app for it."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from fork_deployer.core.models import DeploymentOutcome, DeploymentRequest
from fork_deployer.deploy.pipeline import DeploymentPipeline


router = APIRouter()
logger = structlog.get_logger()


def get_pipeline(request: Request) -> DeploymentPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        # Heroku credentials missing at startup
        raise HTTPException(status_code=503, detail="Deployment service not configured")
    return pipeline


@router.post("/deploy", response_model=DeploymentOutcome)
async def deploy_endpoint(
    payload: DeploymentRequest,
    pipeline: DeploymentPipeline = Depends(get_pipeline),
) -> DeploymentOutcome:
    # DeploymentError from any stage is rendered by the error handler.
    return await pipeline.run(payload)
