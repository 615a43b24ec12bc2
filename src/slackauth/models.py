"""Pydantic models for slackauth data structures."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

TOKEN_PREFIX = "xoxc-"
COOKIE_PREFIX = "xoxd-"
OAUTH_TOKEN_PREFIX = "xoxp-"
BOT_TOKEN_PREFIX = "xoxb-"

# Name of Slack's session cookie
COOKIE_NAME = "d"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_rfc3339(dt: datetime) -> str:
    """Format a datetime as RFC3339 in UTC with a 'Z' suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_rfc3339(value: str) -> Optional[datetime]:
    """Parse an RFC3339 timestamp, returning None if it is malformed."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CredentialSource(str, Enum):
    """Where the current credential came from."""
    NONE = ""
    CONFIG = "config"
    FILE = "file"
    CHROME = "chrome"
    COOKIE_REFRESH = "cookie_refresh"
    OAUTH = "oauth"
    WEB_SETUP = "web_setup"


class Credential(BaseModel):
    """An immutable token/cookie snapshot."""

    model_config = ConfigDict(frozen=True)

    token: str = ""
    cookie: str = ""
    source: CredentialSource = CredentialSource.NONE
    updated_at: Optional[datetime] = None

    def is_usable(self) -> bool:
        """A credential needs a token; the cookie is optional for some token types."""
        return bool(self.token)


class PersistedCredentials(BaseModel):
    """On-disk token file layout."""
    token: str = ""
    cookie: str = ""
    updated_at: str = ""


class ExtractedTokens(BaseModel):
    """Result of a Chrome extraction run."""
    token: str = ""
    cookie: str = ""


class ExtractResult(BaseModel):
    """Outcome of an extraction attempt, safe to hand to a UI."""
    token: str = ""
    cookie: str = ""
    source: str = ""
    success: bool = False
    error: Optional[str] = None


class TokenInfo(BaseModel):
    """Current token health."""
    has_token: bool = False
    has_cookie: bool = False
    source: str = ""
    updated_at: Optional[datetime] = None
    age_hours: float = 0.0
    status: str = "no_tokens"


class OAuthStartResult(BaseModel):
    """Returned by OAuthFlowRegistry.start()."""
    flow_id: str
    authorize_url: str


class OAuthPollResult(BaseModel):
    """Returned by OAuthFlowRegistry.poll()."""
    status: str
    token: str = ""
    error: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status in ("complete", "error")


class RefreshStatus(BaseModel):
    """Diagnostic view of refresh capability. Does not trigger a refresh."""
    token_type: str
    has_cookie: bool
    source: str
    updated_at: str
    can_cookie_refresh: bool
    can_chrome_refresh: bool
    oauth_token: bool
    needs_refresh: bool = Field(description="Browser-session tokens expire and must be rotated")
