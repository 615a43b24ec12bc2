"""
Credential manager - orchestrates acquisition, refresh and the API client.

Acquisition order at startup:
1. Persisted token file (kept fresh by the refresh loop, so it wins over config)
2. Token/cookie from settings or environment
3. One-shot Chrome extraction

Background refresh (every 4 hours by default):
1. Cookie refresh over the network (cheap, no disk access)
2. Full Chrome extraction (expensive, may prompt for Keychain access)
"""

import logging
import threading
from typing import Callable, Optional

import requests

from slackauth.api.client import SlackAPIClient
from slackauth.auth.chrome import can_extract_from_chrome, current_platform
from slackauth.auth.extractor import ChromeExtractor
from slackauth.auth.oauth import OAuthFlowRegistry
from slackauth.auth.providers import ChromeProvider, ConfigProvider, FileProvider, acquire_first
from slackauth.auth.refresh import refresh_via_cookie
from slackauth.auth.storage import CredentialStore
from slackauth.config import Settings, load_settings
from slackauth.errors import (
    ConfigurationError,
    ExtractionError,
    NetworkError,
    SlackAPIError,
)
from slackauth.models import (
    BOT_TOKEN_PREFIX,
    OAUTH_TOKEN_PREFIX,
    TOKEN_PREFIX,
    CredentialSource,
    OAuthPollResult,
    RefreshStatus,
    format_rfc3339,
)

logger = logging.getLogger(__name__)

SETUP_GUIDANCE = """\
To fix this, do one of the following:
  - set SLACK_TOKEN (and SLACK_COOKIE for xoxc-* tokens) in the environment or .env
  - run 'slackauth save --token xoxc-... --cookie xoxd-...' with values from the browser
    (see 'slackauth snippet' for a console script that prints them)
  - complete the OAuth login to obtain an xoxp-* user token
  - log in to Slack (app.slack.com) in Google Chrome on this machine (macOS/Linux)"""


def classify_token(token: str) -> str:
    """Classify a token by prefix: oauth_user, browser_session, bot or unknown."""
    if token.startswith(OAUTH_TOKEN_PREFIX):
        return "oauth_user"
    elif token.startswith(TOKEN_PREFIX):
        return "browser_session"
    elif token.startswith(BOT_TOKEN_PREFIX):
        return "bot"
    return "unknown"


class CredentialManager:
    """
    Owns the credential store and the Slack API client built from it.

    The client is only ever replaced whole, under the store's write lock, so
    get_client() never returns a half-built client. Callers still using an
    older client are unaffected by a swap.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[CredentialStore] = None,
        extractor: Optional[ChromeExtractor] = None,
        refresher: Callable[..., str] = refresh_via_cookie,
        client_factory: Optional[Callable[[str, str], SlackAPIClient]] = None,
        oauth: Optional[OAuthFlowRegistry] = None,
    ):
        self.settings = settings or load_settings()
        self.store = store or CredentialStore(self.settings.token_file)
        self.extractor = extractor or ChromeExtractor()
        self.refresher = refresher
        self.client_factory = client_factory or self._default_client
        self.oauth = oauth or OAuthFlowRegistry(timeout=self.settings.request_timeout)

        self._client: Optional[SlackAPIClient] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._refresh_lock = threading.Lock()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # --- startup ---

    def configure(
        self,
        token: Optional[str] = None,
        cookie: Optional[str] = None,
        start_background: bool = True,
    ):
        """
        Acquire credentials, build the client and start the refresh loop.

        Args:
            token: Explicit token; defaults to settings.token.
            cookie: Explicit cookie; defaults to settings.cookie.
            start_background: Start the periodic refresh thread.

        Raises:
            ConfigurationError: If no strategy produced a usable token.
        """
        token = self.settings.token if token is None else token
        cookie = self.settings.cookie if cookie is None else cookie

        providers = [
            FileProvider(self.store),
            ConfigProvider(token, cookie),
            ChromeProvider(self.extractor),
        ]
        cred, attempts = acquire_first(providers)

        if cred is None:
            tried = "\n".join(f"  - {line}" for line in attempts)
            raise ConfigurationError(
                f"slack: no token found.\nTried:\n{tried}\n{SETUP_GUIDANCE}"
            )

        self.store.replace(cred)
        if cred.source == CredentialSource.CHROME:
            self._persist()

        if not cred.cookie and cred.token.startswith(TOKEN_PREFIX):
            logger.warning("xoxc-* token has no d cookie; API calls will likely fail until a refresh finds one")

        self._swap_client(self.client_factory(cred.token, cred.cookie))
        logger.info(f"Slack credentials configured (source: {cred.source.value})")

        if start_background:
            self.start()

    def start(self):
        """Start the background refresh thread (no-op if running)."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._background_refresh,
            name="slackauth-refresh",
            daemon=True,
        )
        self._thread.start()

    def close(self, timeout: Optional[float] = None):
        """Stop the background thread. An in-flight refresh runs to completion."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # --- client ---

    def _default_client(self, token: str, cookie: str) -> SlackAPIClient:
        return SlackAPIClient(
            token,
            cookie,
            api_base_url=self.settings.api_base_url,
            request_timeout=self.settings.request_timeout,
            max_retries=self.settings.max_retries,
            max_backoff_seconds=self.settings.max_backoff_seconds,
        )

    def _swap_client(self, client: SlackAPIClient):
        with self.store.lock.write():
            self._client = client

    def get_client(self) -> SlackAPIClient:
        """
        Return the current API client.

        Raises:
            ConfigurationError: If configure() has not succeeded yet.
        """
        with self.store.lock.read():
            client = self._client
        if client is None:
            raise ConfigurationError("slack: credentials are not configured")
        return client

    def healthy(self) -> bool:
        """Check the current credentials against auth.test."""
        try:
            self.get_client().auth_test()
            return True
        except (ConfigurationError, SlackAPIError, requests.RequestException) as e:
            logger.debug(f"Health check failed: {e}")
            return False

    # --- refresh ---

    def _background_refresh(self):
        interval = self.settings.refresh_interval_seconds
        while not self._stop.wait(interval):
            try:
                self.refresh_once()
            except Exception as e:
                logger.error(f"Background refresh crashed: {e}", exc_info=True)

    def refresh_once(self) -> bool:
        """
        Run one refresh cycle: cookie refresh, else full Chrome extraction.

        Only browser session (xoxc-) tokens rotate. OAuth user and bot tokens
        are left alone. Failures are logged; the current credential stays in
        place.

        Returns:
            True if new credentials were installed.
        """
        with self._refresh_lock:
            token_type = classify_token(self.store.get()[0])
            if token_type != "browser_session":
                logger.debug(f"Skipping refresh for {token_type} token")
                return False

            if self.refresh_via_cookie():
                return True
            return self.refresh_from_chrome()

    def refresh_via_cookie(self) -> bool:
        """Try to get a fresh token over the network using the stored cookie."""
        _, cookie = self.store.get()
        if not cookie:
            return False

        try:
            token = self.refresher(
                cookie,
                url=self.settings.app_url,
                timeout=self.settings.request_timeout,
                max_bytes=self.settings.refresh_max_bytes,
                max_redirects=self.settings.max_redirects,
            )
        except NetworkError as e:
            logger.warning(f"Cookie refresh failed: {e}")
            return False

        if not token:
            logger.debug("Cookie refresh found no token")
            return False

        self._commit(token, cookie, CredentialSource.COOKIE_REFRESH)
        logger.info("Slack tokens refreshed via cookie")
        return True

    def refresh_from_chrome(self) -> bool:
        """Extract fresh credentials from Chrome and rebuild the client."""
        try:
            extracted = self.extractor.extract()
        except ExtractionError as e:
            logger.warning(f"Chrome refresh failed: {e}")
            return False

        self._commit(extracted.token, extracted.cookie, CredentialSource.CHROME)
        logger.info("Slack tokens refreshed from Chrome")
        return True

    def apply_oauth_token(self, token: str):
        """Install an OAuth user token (xoxp-*), which needs no cookie."""
        self._commit(token, "", CredentialSource.OAUTH)

    def finish_oauth(self, flow_id: str) -> OAuthPollResult:
        """Poll an OAuth flow and install its token once complete."""
        result = self.oauth.poll(flow_id)
        if result.status == "complete":
            self.apply_oauth_token(result.token)
            self.oauth.discard(flow_id)
        return result

    def _commit(self, token: str, cookie: str, source: CredentialSource):
        self.store.set(token, cookie, source)
        self._persist()
        self._swap_client(self.client_factory(token, cookie))

    def _persist(self):
        try:
            self.store.save_to_file()
        except OSError as e:
            logger.warning(f"Failed to save credentials to {self.store.file_path}: {e}")

    # --- diagnostics ---

    def refresh_status(self) -> RefreshStatus:
        """Describe the current token and which refresh strategies can work. Does not refresh."""
        cred = self.store.info()
        token_type = classify_token(cred.token)

        return RefreshStatus(
            token_type=token_type,
            has_cookie=bool(cred.cookie),
            source=cred.source.value,
            updated_at=format_rfc3339(cred.updated_at) if cred.updated_at else "",
            can_cookie_refresh=bool(cred.cookie) and token_type == "browser_session",
            can_chrome_refresh=can_extract_from_chrome(),
            oauth_token=token_type == "oauth_user",
            needs_refresh=token_type == "browser_session",
        )

    def token_status(self) -> dict:
        """Report token age and health (healthy / warning / critical)."""
        info = self.store.token_info()
        hours = self.settings.refresh_interval_hours
        return {
            "status": info.status,
            "age_hours": info.age_hours,
            "source": info.source,
            "updated_at": format_rfc3339(info.updated_at) if info.updated_at else "",
            "auto_refresh": {
                "enabled": self.running,
                "interval": f"{hours:g} hours",
                "platform": current_platform(),
                "requires": "Slack tab open in Chrome (macOS/Linux)",
            },
        }
