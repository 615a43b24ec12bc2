"""
Credential providers, tried in order until one yields a usable credential.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from slackauth.auth.extractor import ChromeExtractor
from slackauth.auth.storage import CredentialStore
from slackauth.errors import ExtractionError, SlackAuthError
from slackauth.models import Credential, CredentialSource, utcnow

logger = logging.getLogger(__name__)


class CredentialProvider(ABC):
    """A single way of obtaining credentials."""

    name: str = "provider"

    @abstractmethod
    def acquire(self) -> Optional[Credential]:
        """
        Return a usable credential, or None if this source has nothing.

        Raises:
            SlackAuthError: If the source failed in a way worth reporting.
        """


class ConfigProvider(CredentialProvider):
    """Credentials supplied explicitly through settings or the environment."""

    name = "config"

    def __init__(self, token: str, cookie: str = ""):
        self.token = token
        self.cookie = cookie

    def acquire(self) -> Optional[Credential]:
        if not self.token:
            return None
        return Credential(
            token=self.token,
            cookie=self.cookie,
            source=CredentialSource.CONFIG,
            updated_at=utcnow(),
        )


class FileProvider(CredentialProvider):
    """The persisted token file."""

    name = "file"

    def __init__(self, store: CredentialStore):
        self.store = store

    def acquire(self) -> Optional[Credential]:
        if not self.store.load_from_file():
            return None
        return self.store.info()


class ChromeProvider(CredentialProvider):
    """One-shot extraction from the local Chrome installation."""

    name = "chrome"

    def __init__(self, extractor: Optional[ChromeExtractor] = None, allow_missing_cookie: bool = True):
        self.extractor = extractor or ChromeExtractor()
        self.allow_missing_cookie = allow_missing_cookie

    def acquire(self) -> Optional[Credential]:
        try:
            extracted = self.extractor.extract()
        except ExtractionError as e:
            partial = e.partial
            if not (self.allow_missing_cookie and partial is not None and partial.token):
                raise
            logger.warning(f"Using Chrome token without session cookie: {e}")
            extracted = partial

        return Credential(
            token=extracted.token,
            cookie=extracted.cookie,
            source=CredentialSource.CHROME,
            updated_at=utcnow(),
        )


def acquire_first(providers: Sequence[CredentialProvider]) -> tuple[Optional[Credential], list[str]]:
    """
    Try providers in order, keeping the first usable credential.

    Returns:
        (credential or None, one line per provider describing what happened)
    """
    attempts: list[str] = []
    for provider in providers:
        try:
            cred = provider.acquire()
        except SlackAuthError as e:
            logger.debug(f"Credential provider {provider.name} failed: {e}")
            attempts.append(f"{provider.name}: {e}")
            continue

        if cred is not None and cred.is_usable():
            logger.info(f"Using credentials from {provider.name}")
            return cred, attempts

        attempts.append(f"{provider.name}: nothing found")

    return None, attempts
