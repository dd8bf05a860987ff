"""Deployment pipeline: session check, fork verification, provisioning and reclamation."""

from .ownership import OwnershipMarker
from .session import is_valid_session
from .github import GitHubClient, verify_fork
from .heroku import HerokuClient
from .provisioner import Provisioner
from .pipeline import DeploymentPipeline, validate_username
from .reclaim import ReclamationLoop

__all__ = [
    "OwnershipMarker",
    "is_valid_session",
    "GitHubClient",
    "verify_fork",
    "HerokuClient",
    "Provisioner",
    "DeploymentPipeline",
    "validate_username",
    "ReclamationLoop",
]
