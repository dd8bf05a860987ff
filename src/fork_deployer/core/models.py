"""Core data models for Fork Deployer."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class DeploymentRequest(BaseModel):
    """Body of ``POST /deploy``.

    Both fields accept any JSON value so that a missing or mistyped value is
    reported by the matching pipeline stage instead of a schema validation
    error.
    """

    github_username: Optional[Any] = Field(None, description="GitHub account that owns the fork")
    session_id: Optional[Any] = Field(None, description="Prefixed base64 session credential")


class ForkRejection(str, Enum):
    """Why a fork did not pass verification."""

    REPO_UNAVAILABLE = "repo_unavailable"
    NOT_OFFICIAL_FORK = "not_official_fork"
    MARKER_MISSING = "marker_missing"


class ForkVerificationResult(BaseModel):
    """Outcome of the fork check; truthy only when verified."""

    verified: bool
    reason: Optional[ForkRejection] = None

    def __bool__(self) -> bool:
        return self.verified

    @classmethod
    def ok(cls) -> "ForkVerificationResult":
        return cls(verified=True)

    @classmethod
    def rejected(cls, reason: ForkRejection) -> "ForkVerificationResult":
        return cls(verified=False, reason=reason)


class ProvisionedInstance(BaseModel):
    """A Heroku app created for one deployment. Never persisted locally."""

    name: str = Field(..., description="Unique app name starting with the ownership prefix")
    url: str = Field(..., description="Public URL of the app")
    created_at: datetime = Field(..., description="When the app was requested")
    source_account: str = Field(..., description="GitHub account whose fork is deployed")


class PlatformApp(BaseModel):
    """One entry of the Heroku app listing; other fields are ignored."""

    name: str
    created_at: Optional[datetime] = None


class DeploymentOutcome(BaseModel):
    """Success body of ``POST /deploy``."""

    success: bool = True
    url: str
    appName: str
    deployment_time: datetime


class ReclamationReport(BaseModel):
    """What a single reclamation cycle did."""

    checked_at: datetime
    owned: int = Field(0, description="Apps carrying the ownership prefix")
    deleted: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    kept: List[str] = Field(default_factory=list)
