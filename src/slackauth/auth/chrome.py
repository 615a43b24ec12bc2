"""
Google Chrome on-disk layout.

Chrome keeps one directory per profile under its user data directory:
- "Default" for the first profile
- "Profile 1", "Profile 2", ... for additional ones
"""

import logging
import shutil
import sys
from pathlib import Path
from typing import Optional

from slackauth.errors import ExtractionError

logger = logging.getLogger(__name__)

SUPPORTED_PLATFORMS = ("darwin", "linux")


def current_platform() -> str:
    """Return 'darwin', 'linux', 'win32', ..."""
    return sys.platform


def can_extract_from_chrome() -> bool:
    """Check if automatic Chrome extraction is supported on this platform."""
    return current_platform() in SUPPORTED_PLATFORMS


def get_chrome_base_dir() -> Path:
    """Get the Chrome user data directory for the current platform."""
    platform = current_platform()
    home = Path.home()

    if platform == "darwin":
        return home / "Library" / "Application Support" / "Google" / "Chrome"
    elif platform == "linux":
        return home / ".config" / "google-chrome"

    raise ExtractionError(
        f"Chrome extraction is only available on macOS and Linux (running on {platform})"
    )


def _is_profile_name(name: str) -> bool:
    return name == "Default" or name.startswith("Profile ")


def find_chrome_profiles(base_dir: Optional[Path] = None) -> list[Path]:
    """
    Find all Chrome profile directories.

    Args:
        base_dir: Chrome user data directory. Defaults to the platform location.

    Returns:
        Profile directories, "Default" first, then "Profile N" by name.

    Raises:
        ExtractionError: If the base directory does not exist.
    """
    if base_dir is None:
        base_dir = get_chrome_base_dir()

    if not base_dir.is_dir():
        raise ExtractionError(
            f"could not find Chrome profiles: {base_dir} does not exist "
            "(is Chrome installed and has it been run?)"
        )

    profiles = [
        item for item in base_dir.iterdir()
        if item.is_dir() and _is_profile_name(item.name)
    ]
    profiles.sort(key=lambda p: (p.name != "Default", p.name))

    logger.debug(f"Found {len(profiles)} Chrome profile(s) in {base_dir}")
    return profiles


def copy_locked_dir(src: Path, dst: Path, skip: tuple[str, ...] = ("LOCK",)) -> int:
    """
    Copy the regular files of a directory Chrome may hold locked.

    Files that cannot be copied are skipped.

    Returns:
        Number of files copied.
    """
    copied = 0
    for item in src.iterdir():
        if item.is_dir() or item.name in skip:
            continue
        try:
            shutil.copy2(item, dst / item.name)
            copied += 1
        except OSError as e:
            logger.debug(f"Skipping {item.name}: {e}")
    return copied
