"""Exception hierarchy for credential acquisition."""

from typing import Optional


class SlackAuthError(Exception):
    """Base class for all slackauth errors."""


class ConfigurationError(SlackAuthError):
    """No strategy produced a usable credential. Fatal at startup."""


class ExtractionError(SlackAuthError):
    """One extraction strategy or profile failed. Try the next one.

    ``partial`` holds whatever was recovered before the failure (for example a
    token without its cookie) so callers can decide how lenient to be.
    """

    def __init__(self, message: str, partial=None):
        super().__init__(message)
        self.partial = partial


class KeychainError(ExtractionError):
    """The OS keychain did not return the Chrome Safe Storage secret."""


class DecryptionError(ExtractionError):
    """A single encrypted cookie value could not be decrypted."""


class NetworkError(SlackAuthError):
    """The cookie-based refresh request failed."""


class OAuthError(SlackAuthError):
    """OAuth state mismatch or token exchange failure."""


class SlackAPIError(SlackAuthError):
    """The Slack Web API answered with ok=false."""

    def __init__(self, method: str, error: str, response: Optional[dict] = None):
        super().__init__(f"{method} failed: {error}")
        self.method = method
        self.error = error
        self.response = response or {}
