"""Configuration management using Pydantic Settings."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_default_token_file() -> Path:
    """Get the default path of the persisted token file."""
    return Path.home() / ".slack-mcp-tokens.json"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="SLACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Credentials (optional - can be recovered from Chrome or the token file)
    token: str = Field(default="", description="Slack token (xoxc-*, xoxp-* or xoxb-*)")
    cookie: str = Field(default="", description="Slack 'd' session cookie (xoxd-*), required for xoxc-* tokens")

    token_file: Path = Field(
        default_factory=get_default_token_file,
        description="Persisted token file (owner-only permissions)"
    )

    # Refresh
    refresh_interval_hours: float = Field(default=4.0, description="Background refresh interval in hours")
    refresh_max_bytes: int = Field(default=2 * 1024 * 1024, description="Max body size read by the cookie refresh request")
    max_redirects: int = Field(default=5, description="Max redirect hops followed by the cookie refresh request")
    app_url: str = Field(default="https://app.slack.com", description="Slack web app URL used by the cookie refresh")

    # API settings
    api_base_url: str = Field(default="https://slack.com/api", description="Base URL for the Slack Web API")
    request_timeout: int = Field(default=30, description="Request timeout in seconds")
    max_retries: int = Field(default=5, description="Maximum retry attempts on rate limiting")
    max_backoff_seconds: int = Field(default=60, description="Maximum backoff time")

    # OAuth
    oauth_client_id: str = Field(default="", description="Slack app client ID for the OAuth flow")
    oauth_client_secret: str = Field(default="", description="Slack app client secret for the OAuth flow")
    oauth_redirect_uri: str = Field(
        default="http://localhost:8080/oauth/slack/callback",
        description="Redirect URI registered with the Slack app"
    )

    @field_validator("token_file", mode="before")
    @classmethod
    def expand_token_file(cls, v):
        """Expand user home directory in token_file."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @property
    def refresh_interval_seconds(self) -> float:
        return self.refresh_interval_hours * 3600


def load_settings() -> Settings:
    """Load settings from environment and .env file."""
    settings = Settings()
    return settings
