"""Configuration management for Fork Deployer."""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Heroku app names are at most 30 characters. Generated names append epoch
# millis (13 digits), a dash and up to 3 random digits to the prefix.
HEROKU_APP_NAME_MAX_LENGTH = 30
APP_NAME_SUFFIX_LENGTH = 17


class Settings(BaseSettings):
    """Service configuration settings.

    Every field can be overridden by the environment variable of the same
    name (case-insensitive) or by a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server configuration
    host: str = Field("0.0.0.0", description="Server host")
    port: int = Field(3000, description="Server port")
    reload: bool = Field(False, description="Enable auto-reload in development")
    static_dir: str = Field("public", description="Directory holding the front-end index.html")

    # Heroku platform API
    heroku_api_key: Optional[str] = Field(None, description="Heroku API key (bearer token)")
    heroku_api_url: str = Field("https://api.heroku.com", description="Heroku platform API base URL")
    heroku_region: str = Field("eu", description="Region for newly created apps")
    app_name_prefix: str = Field(
        "tkt-xmd-v3-",
        description="Reserved prefix marking apps owned by this service",
    )
    app_url_template: str = Field(
        "https://{name}.herokuapp.com",
        description="Public URL of a created app",
    )
    rollback_failed_provisioning: bool = Field(
        False,
        description="Delete a created app when configuring or building it fails",
    )

    # GitHub source hosting API
    github_api_url: str = Field("https://api.github.com", description="GitHub REST API base URL")
    github_token: Optional[str] = Field(None, description="Optional GitHub token for higher rate limits")
    github_user_agent: str = Field("TKT-CYBER-XMD-V3-Deployer", description="User-Agent sent to GitHub")
    official_repo: str = Field("tkttech/TKT-CYBER-XMD-V3", description="Upstream repository full name")
    repo_name: str = Field("TKT-CYBER-XMD-V3", description="Expected name of the fork")
    marker_path: str = Field("package.json", description="File that must exist in the fork")

    # Session credential
    session_prefix: str = Field("TKT-CYBER~", description="Literal prefix of a session credential")

    # Reclamation
    reclamation_enabled: bool = Field(True, description="Run the background reclamation loop")
    reclaim_interval_seconds: float = Field(6 * 60 * 60, description="Seconds between reclamation cycles")
    max_app_age_hours: float = Field(24.0, description="Age at which an owned app is deleted")
    reclaim_on_startup: bool = Field(False, description="Run one cycle immediately at startup")

    # Outbound HTTP
    http_timeout_seconds: float = Field(30.0, description="Timeout for GitHub and Heroku calls")

    # Observability
    log_level: str = Field("INFO")
    log_format: str = Field("json")
    metrics_enabled: bool = Field(True)

    @field_validator("app_name_prefix")
    @classmethod
    def validate_app_name_prefix(cls, v: str) -> str:
        """Non-empty, lowercase and short enough for generated names to fit Heroku's limit."""
        v = v.strip()
        if not v:
            raise ValueError("app_name_prefix must not be empty")
        if v != v.lower():
            raise ValueError(f"app_name_prefix must be lowercase: {v}")
        if len(v) + APP_NAME_SUFFIX_LENGTH > HEROKU_APP_NAME_MAX_LENGTH:
            raise ValueError(
                f"app_name_prefix must be at most {HEROKU_APP_NAME_MAX_LENGTH - APP_NAME_SUFFIX_LENGTH} characters: {v}"
            )
        return v

    @field_validator("official_repo")
    @classmethod
    def validate_official_repo(cls, v: str) -> str:
        """Validate owner/name format."""
        parts = v.split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"official_repo must look like owner/name: {v}")
        return v

