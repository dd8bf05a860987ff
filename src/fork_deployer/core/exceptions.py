"""Custom exceptions for Fork Deployer."""

from typing import Any, Dict, List, Optional


class ForkDeployerError(Exception):
    """Base exception for all service errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ConfigurationError(ForkDeployerError):
    """Configuration error."""
    pass


class RemoteAPIError(ForkDeployerError):
    """A call to GitHub or Heroku failed.

    ``status_code`` is None when no HTTP response was received at all.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message, code)
        self.status_code = status_code


class GitHubAPIError(RemoteAPIError):
    """GitHub REST API call failed."""
    pass


class PlatformAPIError(RemoteAPIError):
    """Heroku platform API call failed."""
    pass


class DeploymentError(ForkDeployerError):
    """A pipeline stage rejected the request.

    Subclasses know the HTTP status and the JSON body returned to the client.
    """

    status_code = 500
    error = "Deployment failed"
    default_code = "deployment_error"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message or self.error, code or self.default_code)

    def context(self) -> Dict[str, Any]:
        return {}

    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error, "code": self.code}
        body.update(self.context())
        return body


class InputFormatError(DeploymentError):
    """GitHub username does not match the account name grammar."""

    status_code = 400
    error = "Invalid GitHub username format"
    default_code = "invalid_username"

    def context(self) -> Dict[str, Any]:
        return {"solution": "Use only letters, numbers, hyphens or underscores"}


class ForkNotVerifiedError(DeploymentError):
    """The account has no usable fork of the official repository."""

    status_code = 403
    error = "Valid fork not found"
    default_code = "fork_not_verified"

    def __init__(self, official_repo_url: str, fork_url: str, reason: Optional[str] = None):
        super().__init__()
        self.official_repo_url = official_repo_url
        self.fork_url = fork_url
        self.reason = reason

    def context(self) -> Dict[str, Any]:
        steps: List[str] = [
            f"1. Fork {self.official_repo_url}",
            "2. Wait 2 minutes for GitHub to sync",
            "3. Ensure your fork is public",
        ]
        return {"steps": steps, "fork_url": self.fork_url, "reason": self.reason}


class InvalidSessionError(DeploymentError):
    """Session credential has the wrong shape."""

    status_code = 400
    error = "Invalid SESSION_ID"
    default_code = "invalid_session"

    def __init__(self, session_prefix: str):
        super().__init__()
        self.session_prefix = session_prefix

    def context(self) -> Dict[str, Any]:
        return {
            "required_format": f"({self.session_prefix})base64_encoded_string",
            "example": f"({self.session_prefix})eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
        }


class ProvisioningError(DeploymentError):
    """Creating, configuring or building the Heroku app failed."""

    status_code = 500
    error = "Deployment failed"
    default_code = "deployment_failed"

    def __init__(self, details: str, app_name: Optional[str] = None):
        super().__init__(details)
        self.details = details
        self.app_name = app_name

    def context(self) -> Dict[str, Any]:
        return {"details": self.details, "tip": "Check your Heroku API key and quota"}


class ReclamationError(ForkDeployerError):
    """Reclamation-related errors. Never surfaced to clients."""
    pass


class ReclamationCycleError(ReclamationError):
    """Listing apps failed, so the whole cycle was skipped."""
    pass


class InstanceDeletionError(ReclamationError):
    """Deleting one app failed; the rest of the cycle continues."""

    def __init__(self, app_name: str, message: str):
        super().__init__(f"Failed to delete {app_name}: {message}", code="deletion_failed")
        self.app_name = app_name
