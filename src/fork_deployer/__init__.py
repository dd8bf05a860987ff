"""Fork Deployer - gated Heroku deployments for verified repository forks."""

__version__ = "0.1.0"
__author__ = "Fork Deployer Team"

from fork_deployer.core.config import Settings
from fork_deployer.core.models import DeploymentRequest, ProvisionedInstance

__all__ = ["Settings", "DeploymentRequest", "ProvisionedInstance", "__version__"]
