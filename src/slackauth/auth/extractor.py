"""
Recover Slack credentials from Chrome's on-disk storage.

- Token (xoxc-*): LevelDB localStorage at <profile>/Local Storage/leveldb/
- Cookie (xoxd-*): encrypted SQLite cookie DB at <profile>/Cookies

Token and cookie are searched independently across all profiles; they do not
have to come from the same one.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from slackauth.auth.chrome import can_extract_from_chrome, current_platform, find_chrome_profiles
from slackauth.auth.cookies import extract_cookie_from_chrome
from slackauth.auth.localstorage import extract_token_from_leveldb
from slackauth.errors import ExtractionError
from slackauth.models import COOKIE_PREFIX, TOKEN_PREFIX, ExtractedTokens, ExtractResult

logger = logging.getLogger(__name__)

# Serializes every extraction run in the process; runs share temp-file naming
# and the keychain prompt.
_extract_lock = threading.Lock()


class ChromeExtractor:
    """Drives token and cookie extraction across all Chrome profiles."""

    def __init__(
        self,
        find_profiles: Callable[[], list[Path]] = find_chrome_profiles,
        extract_token: Callable[[Path], str] = extract_token_from_leveldb,
        extract_cookie: Callable[[Path], str] = extract_cookie_from_chrome,
        check_platform: bool = True,
    ):
        self.find_profiles = find_profiles
        self.extract_token = extract_token
        self.extract_cookie = extract_cookie
        self.check_platform = check_platform

    def extract(self) -> ExtractedTokens:
        """
        Extract the session token and cookie.

        Returns:
            ExtractedTokens with both values set.

        Raises:
            ExtractionError: With one of four messages depending on what was
                found. ``partial`` carries any token or cookie recovered.
        """
        if self.check_platform and not can_extract_from_chrome():
            raise ExtractionError(
                f"Chrome extraction is only available on macOS and Linux (running on {current_platform()})"
            )

        with _extract_lock:
            return self._extract_locked()

    def _extract_locked(self) -> ExtractedTokens:
        profiles = self.find_profiles()
        if not profiles:
            raise ExtractionError("no Chrome profiles found")

        token = ""
        cookie = ""
        last_token_err: Optional[Exception] = None
        last_cookie_err: Optional[Exception] = None

        for profile in profiles:
            if not token:
                try:
                    token = self.extract_token(profile)
                except (ExtractionError, OSError) as e:
                    logger.debug(f"Token extraction failed for {profile.name}: {e}")
                    last_token_err = e
            if not cookie:
                try:
                    cookie = self.extract_cookie(profile)
                except (ExtractionError, OSError) as e:
                    logger.debug(f"Cookie extraction failed for {profile.name}: {e}")
                    last_cookie_err = e
            if token and cookie:
                break

        if not token and not cookie:
            msg = "could not extract Slack credentials from Chrome."
            if last_token_err:
                msg += f" Token: {last_token_err}."
            if last_cookie_err:
                msg += f" Cookie: {last_cookie_err}."
            msg += " Make sure you are logged in to Slack (app.slack.com) in Chrome."
            raise ExtractionError(msg)

        partial = ExtractedTokens(token=token, cookie=cookie)
        if not token:
            msg = f"found cookie but no {TOKEN_PREFIX}* token in Chrome localStorage."
            if last_token_err:
                msg += f" {last_token_err}"
            raise ExtractionError(msg, partial=partial)
        if not cookie:
            msg = f"found token but no {COOKIE_PREFIX}* cookie in Chrome cookie store."
            if last_cookie_err:
                msg += f" {last_cookie_err}"
            raise ExtractionError(msg, partial=partial)

        logger.info("Extracted Slack credentials from Chrome")
        return partial


def extract_from_chrome() -> ExtractedTokens:
    """Extract credentials from the local Chrome installation."""
    return ChromeExtractor().extract()


def extract_for_web(extractor: Optional[ChromeExtractor] = None) -> ExtractResult:
    """Run an extraction and wrap the outcome without raising."""
    extractor = extractor or ChromeExtractor()
    try:
        extracted = extractor.extract()
    except ExtractionError as e:
        return ExtractResult(success=False, error=str(e))

    return ExtractResult(
        token=extracted.token,
        cookie=extracted.cookie,
        source="chrome",
        success=True,
    )


EXTRACTION_SNIPPET = """(function() {
  var cookie = document.cookie.split('; ').find(c => c.startsWith('d='));
  var cookieVal = cookie ? cookie.split('=').slice(1).join('=') : '';
  var token = '';
  try { var cfg = JSON.parse(localStorage.localConfig_v2); token = cfg.teams[Object.keys(cfg.teams)[0]].token; } catch(e) {}
  if (!token) { try { var cfg3 = JSON.parse(localStorage.localConfig_v3); token = cfg3.teams[Object.keys(cfg3.teams)[0]].token; } catch(e) {} }
  if (!token) { try { token = window.boot_data && window.boot_data.api_token; } catch(e) {} }
  if (token && cookieVal) {
    prompt('Copy this entire value:', JSON.stringify({token: token, cookie: cookieVal}));
  } else {
    alert('Could not extract tokens. Make sure you are on a Slack workspace page (app.slack.com).');
  }
})();"""


def extraction_snippet() -> str:
    """JavaScript to paste in the browser console to read the token and cookie by hand.

    The d cookie is HttpOnly on some workspaces; in that case copy it from the
    browser's developer tools instead.
    """
    return EXTRACTION_SNIPPET
