"""
Thread-safe credential store with atomic file persistence.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from slackauth.config import get_default_token_file
from slackauth.models import (
    Credential,
    CredentialSource,
    PersistedCredentials,
    TokenInfo,
    format_rfc3339,
    parse_rfc3339,
    utcnow,
)
from slackauth.utils.locks import ReadWriteLock

logger = logging.getLogger(__name__)

WARNING_AGE_HOURS = 6
CRITICAL_AGE_HOURS = 10


def health_status(age_hours: float) -> str:
    """Map a token age to healthy / warning / critical."""
    if age_hours > CRITICAL_AGE_HOURS:
        return "critical"
    elif age_hours > WARNING_AGE_HOURS:
        return "warning"
    return "healthy"


class CredentialStore:
    """
    Holds the current token and cookie.

    The credential is an immutable snapshot replaced under the write lock;
    readers never see a half-updated pair.
    """

    def __init__(self, file_path: Optional[Path] = None):
        """
        Initialize credential store.

        Args:
            file_path: Persisted token file. Defaults to ~/.slack-mcp-tokens.json.
        """
        self.file_path = file_path or get_default_token_file()
        self.lock = ReadWriteLock()
        self._credential = Credential()

    @property
    def tmp_path(self) -> Path:
        return self.file_path.with_name(self.file_path.name + ".tmp")

    def get(self) -> tuple[str, str]:
        """Return (token, cookie)."""
        with self.lock.read():
            cred = self._credential
        return cred.token, cred.cookie

    def info(self) -> Credential:
        """Return the full credential snapshot, including source and timestamp."""
        with self.lock.read():
            return self._credential

    def set(self, token: str, cookie: str, source: CredentialSource = CredentialSource.CONFIG):
        """Replace the credential, stamping the current time."""
        cred = Credential(token=token, cookie=cookie, source=source, updated_at=utcnow())
        with self.lock.write():
            self._credential = cred

    def replace(self, cred: Credential):
        """Swap in a complete snapshot, keeping its source and timestamp."""
        with self.lock.write():
            self._credential = cred

    def load_from_file(self) -> bool:
        """
        Load the persisted token file.

        The in-memory credential is only replaced if the file exists, parses,
        and holds a non-empty token.

        Returns:
            True if the credential was replaced.
        """
        try:
            data = self.file_path.read_bytes()
            persisted = PersistedCredentials.model_validate_json(data)
        except FileNotFoundError:
            return False
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.debug(f"Failed to load token file {self.file_path}: {e}")
            return False

        if not persisted.token:
            return False

        cred = Credential(
            token=persisted.token,
            cookie=persisted.cookie,
            source=CredentialSource.FILE,
            updated_at=parse_rfc3339(persisted.updated_at) or utcnow(),
        )
        with self.lock.write():
            self._credential = cred

        logger.info(f"Loaded credentials from {self.file_path}")
        return True

    def save_to_file(self):
        """
        Atomically write the current credential to disk.

        Writes <file>.tmp with owner-only permissions, then renames it over the
        token file, so the canonical file is never partially written.

        Raises:
            OSError: If the file cannot be written.
        """
        with self.lock.write():
            cred = self._credential
            payload = PersistedCredentials(
                token=cred.token,
                cookie=cred.cookie,
                updated_at=format_rfc3339(cred.updated_at or utcnow()),
            )
            data = json.dumps(payload.model_dump(), indent=2).encode("utf-8")
            _atomic_write(self.file_path, self.tmp_path, data)

        logger.debug(f"Credentials saved to {self.file_path}")

    def token_info(self) -> TokenInfo:
        """Summarize the current credential's age and health."""
        return describe_credential(self.info())


def _atomic_write(path: Path, tmp_path: Path, data: bytes):
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        # O_CREAT's mode is ignored when the temp file already existed
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def describe_credential(cred: Credential) -> TokenInfo:
    if not cred.token:
        return TokenInfo(status="no_tokens")

    age_hours = 0.0
    if cred.updated_at is not None:
        age_hours = round((utcnow() - cred.updated_at).total_seconds() / 3600, 1)

    return TokenInfo(
        has_token=True,
        has_cookie=bool(cred.cookie),
        source=cred.source.value,
        updated_at=cred.updated_at,
        age_hours=age_hours,
        status=health_status(age_hours),
    )


def save_tokens(token: str, cookie: str, file_path: Optional[Path] = None) -> TokenInfo:
    """
    Persist manually supplied credentials (e.g. pasted from the browser).

    Raises:
        ValueError: If the token is empty.
    """
    if not token:
        raise ValueError("token is required")

    store = CredentialStore(file_path)
    store.set(token.strip(), cookie.strip(), CredentialSource.WEB_SETUP)
    store.save_to_file()
    return store.token_info()


def read_token_info(file_path: Optional[Path] = None) -> TokenInfo:
    """Report the health of the persisted token file without a running manager."""
    store = CredentialStore(file_path)
    if not store.load_from_file():
        return TokenInfo(status="no_tokens")
    return store.token_info()
