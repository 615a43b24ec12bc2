"""
Read the Slack session token from Chrome's localStorage.

Slack's web client keeps its per-workspace config in localStorage under
``localConfig_v2``. Chrome persists localStorage in a LevelDB at
``<profile>/Local Storage/leveldb`` and holds an exclusive lock on it while
running, so the database is copied to a temp directory before it is opened.
"""

import json
import logging
import tempfile
from pathlib import Path

from slackauth.auth.chrome import copy_locked_dir
from slackauth.errors import ExtractionError
from slackauth.models import TOKEN_PREFIX

logger = logging.getLogger(__name__)

LOCAL_CONFIG_KEY = b"_https://app.slack.com\x00\x01localConfig_v2"

# Chrome prefixes localStorage values with an encoding tag.
LATIN1_TAG = 0x01
UTF16_TAG = 0x00


def decode_local_storage_value(raw: bytes) -> str:
    """Strip the leading type tag of a localStorage value and decode it."""
    if raw[:1] == bytes([UTF16_TAG]):
        return raw[1:].decode("utf-16-le")
    if raw[:1] == bytes([LATIN1_TAG]):
        raw = raw[1:]
    return raw.decode("utf-8", errors="replace")


def find_token_in_local_config(data: str, profile_name: str = "") -> str:
    """
    Find the first xoxc-* token across all teams of a localConfig_v2 blob.

    Raises:
        ExtractionError: If the blob is not valid JSON or holds no such token.
    """
    try:
        config = json.loads(data)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"parsing localConfig_v2: {e}") from e

    teams = config.get("teams") if isinstance(config, dict) else None
    if isinstance(teams, dict):
        for team in teams.values():
            token = team.get("token", "") if isinstance(team, dict) else ""
            if isinstance(token, str) and token.startswith(TOKEN_PREFIX):
                return token

    raise ExtractionError(f"no {TOKEN_PREFIX}* token in localConfig_v2 for profile {profile_name}")


def extract_token_from_leveldb(profile_path: Path) -> str:
    """
    Extract the xoxc-* session token from a Chrome profile.

    Args:
        profile_path: Chrome profile directory.

    Returns:
        The token.

    Raises:
        ExtractionError: If the token cannot be recovered from this profile.
    """
    ldb_dir = profile_path / "Local Storage" / "leveldb"
    if not ldb_dir.is_dir():
        raise ExtractionError(f"no LevelDB at {ldb_dir}")

    try:
        import plyvel
    except ImportError as e:
        raise ExtractionError("plyvel is not installed (pip install slackauth[chrome])") from e

    with tempfile.TemporaryDirectory(prefix="slack-ldb-") as tmp:
        tmp_dir = Path(tmp)
        try:
            copy_locked_dir(ldb_dir, tmp_dir)
        except OSError as e:
            raise ExtractionError(f"reading LevelDB dir: {e}") from e

        try:
            db = plyvel.DB(str(tmp_dir), create_if_missing=False)
        except plyvel.Error as e:
            raise ExtractionError(f"opening LevelDB copy: {e}") from e

        try:
            raw = db.get(LOCAL_CONFIG_KEY)
        finally:
            db.close()

    if raw is None:
        raise ExtractionError(f"key not found in profile {profile_path.name}")

    try:
        data = decode_local_storage_value(raw)
    except UnicodeDecodeError as e:
        raise ExtractionError(f"decoding localConfig_v2: {e}") from e

    token = find_token_in_local_config(data, profile_path.name)
    logger.debug(f"Found session token in Chrome profile: {profile_path.name}")
    return token
