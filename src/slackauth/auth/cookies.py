"""
Read the Slack ``d`` session cookie from Chrome's encrypted cookie store.

Chrome encrypts cookie values with AES-128-CBC. The key is derived with
PBKDF2-HMAC-SHA1 from the "Chrome Safe Storage" secret held in the OS
keychain (macOS Keychain, or the Secret Service on Linux).
"""

import logging
import shutil
import sqlite3
import tempfile
from contextlib import closing
from pathlib import Path
from typing import Callable, Optional

from Crypto.Cipher import AES
from Crypto.Protocol.KDF import PBKDF2
from Crypto.Util.Padding import unpad

from slackauth.auth.chrome import current_platform
from slackauth.errors import DecryptionError, ExtractionError, KeychainError
from slackauth.models import COOKIE_NAME, COOKIE_PREFIX

logger = logging.getLogger(__name__)

COOKIE_DOMAIN = "slack.com"

SAFE_STORAGE_SERVICE = "Chrome Safe Storage"
SAFE_STORAGE_ACCOUNT = "Chrome"

SALT = b"saltysalt"
IV = b" " * 16
KEY_LENGTH = 16
MAC_ITERATIONS = 1003
LINUX_ITERATIONS = 1

# Chrome on Linux encrypts v10 values with this fixed password when no
# keyring is available; v11 values use the keyring secret.
LINUX_DEFAULT_PASSWORD = b"peanuts"

KNOWN_PREFIXES = (b"v10", b"v11")


def _macos_password() -> bytes:
    import keyring
    from keyring.errors import KeyringError

    try:
        password = keyring.get_password(SAFE_STORAGE_SERVICE, SAFE_STORAGE_ACCOUNT)
    except KeyringError as e:
        raise KeychainError(f"could not read {SAFE_STORAGE_SERVICE} from Keychain: {e}") from e

    if not password:
        raise KeychainError(f"no {SAFE_STORAGE_SERVICE} entry in Keychain")
    return password.strip().encode("utf-8")


def _linux_password() -> bytes:
    import secretstorage
    from secretstorage.exceptions import SecretStorageException

    try:
        with closing(secretstorage.dbus_init()) as connection:
            collection = secretstorage.get_default_collection(connection)
            if collection.is_locked():
                collection.unlock()
            for item in collection.get_all_items():
                if item.get_label() == SAFE_STORAGE_SERVICE:
                    return item.get_secret()
    except SecretStorageException as e:
        logger.debug(f"Secret Service not available: {e}")

    # Chrome falls back to the basic password store
    return LINUX_DEFAULT_PASSWORD


def get_safe_storage_password() -> bytes:
    """
    Retrieve the Chrome Safe Storage secret from the OS keychain.

    On macOS this may block on an interactive Keychain approval prompt.

    Raises:
        KeychainError: If the secret is unavailable.
    """
    platform = current_platform()
    if platform == "darwin":
        return _macos_password()
    elif platform == "linux":
        return _linux_password()
    raise KeychainError(f"no Chrome Safe Storage support on {platform}")


def pbkdf2_iterations() -> int:
    return MAC_ITERATIONS if current_platform() == "darwin" else LINUX_ITERATIONS


def derive_key(password: bytes, iterations: int = MAC_ITERATIONS) -> bytes:
    """Derive the 16-byte AES key from the Safe Storage secret."""
    return PBKDF2(password, SALT, dkLen=KEY_LENGTH, count=iterations)


def decrypt_cookie_value(
    encrypted: bytes,
    password: bytes,
    iterations: int = MAC_ITERATIONS,
) -> str:
    """
    Decrypt a Chrome ``encrypted_value`` blob.

    Handles the v10/v11 prefix and the 32-byte host digest that cookie DB schema
    v24+ prepends to the plaintext: the value is located by scanning for the
    xoxd- prefix.

    Raises:
        DecryptionError: If the blob is malformed or the padding is invalid.
    """
    if len(encrypted) <= 3:
        raise DecryptionError("too short")

    prefix = encrypted[:3]
    if prefix not in KNOWN_PREFIXES:
        raise DecryptionError(f"unknown prefix: {prefix!r}")

    body = encrypted[3:]
    if len(body) % AES.block_size != 0:
        raise DecryptionError("not block-aligned")

    cipher = AES.new(derive_key(password, iterations), AES.MODE_CBC, IV)
    try:
        decrypted = unpad(cipher.decrypt(body), AES.block_size)
    except ValueError as e:
        raise DecryptionError("bad padding") from e

    idx = decrypted.find(COOKIE_PREFIX.encode("ascii"))
    if idx >= 0:
        decrypted = decrypted[idx:]

    try:
        return decrypted.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("plaintext is not valid UTF-8") from e


def find_cookies_db(profile_path: Path) -> Optional[Path]:
    """Return the cookie database of a profile (newer Chrome keeps it under Network/)."""
    for candidate in (profile_path / "Network" / "Cookies", profile_path / "Cookies"):
        if candidate.is_file():
            return candidate
    return None


def read_cookie_rows(db_path: Path) -> list[tuple[str, str, bytes]]:
    """Read (host_key, name, encrypted_value) rows for Slack's d cookie."""
    with closing(sqlite3.connect(db_path)) as conn:
        cursor = conn.execute(
            """
            SELECT host_key, name, encrypted_value FROM cookies
            WHERE host_key LIKE ? AND name = ?
            """,
            (f"%{COOKIE_DOMAIN}%", COOKIE_NAME),
        )
        return cursor.fetchall()


def extract_cookie_from_chrome(
    profile_path: Path,
    password_provider: Callable[[], bytes] = get_safe_storage_password,
    iterations: Optional[int] = None,
) -> str:
    """
    Extract the xoxd-* session cookie from a Chrome profile.

    The keychain is only queried once a candidate row exists. Rows that fail
    to decrypt are skipped.

    Raises:
        ExtractionError: If no usable cookie is found in this profile.
        KeychainError: If the Safe Storage secret is unavailable.
    """
    cookies_file = find_cookies_db(profile_path)
    if cookies_file is None:
        raise ExtractionError(f"no Cookies file in {profile_path}")

    if iterations is None:
        iterations = pbkdf2_iterations()

    with tempfile.TemporaryDirectory(prefix="slack-cookies-") as tmp:
        tmp_file = Path(tmp) / "Cookies"
        try:
            shutil.copy2(cookies_file, tmp_file)
            rows = read_cookie_rows(tmp_file)
        except (OSError, sqlite3.Error) as e:
            raise ExtractionError(f"reading Cookies DB: {e}") from e

    password: Optional[bytes] = None
    for host, name, encrypted in rows:
        if COOKIE_DOMAIN not in host or name != COOKIE_NAME:
            continue
        if not isinstance(encrypted, bytes) or len(encrypted) < 4:
            continue

        if encrypted[:3] == b"v10" and current_platform() == "linux":
            row_password = LINUX_DEFAULT_PASSWORD
        else:
            if password is None:
                password = password_provider()
            row_password = password

        try:
            value = decrypt_cookie_value(encrypted, row_password, iterations)
        except DecryptionError as e:
            logger.debug(f"Skipping cookie row for {host}: {e}")
            continue

        if value.startswith(COOKIE_PREFIX):
            logger.debug(f"Found session cookie in Chrome profile: {profile_path.name}")
            return value

    raise ExtractionError(f"no {COOKIE_PREFIX}* cookie for {COOKIE_DOMAIN} in profile {profile_path.name}")
