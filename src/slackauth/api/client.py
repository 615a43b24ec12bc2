"""HTTP client for the Slack Web API with cookie injection and backoff."""

import logging
import time
from typing import Any, Optional

import requests
from requests.adapters import BaseAdapter

from slackauth.api.transport import build_session
from slackauth.errors import SlackAPIError
from slackauth.utils.backoff import RateLimitBackoff

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://slack.com/api"


class SlackAPIClient:
    """
    Minimal Slack Web API client.

    Every request carries the bearer token and, through the cookie-injecting
    transport, the d session cookie.
    """

    def __init__(
        self,
        token: str,
        cookie: str = "",
        api_base_url: str = DEFAULT_API_BASE_URL,
        request_timeout: int = 30,
        max_retries: int = 5,
        max_backoff_seconds: int = 60,
        adapter: Optional[BaseAdapter] = None,
    ):
        self.token = token
        self.cookie = cookie
        self.api_base_url = api_base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.max_backoff_seconds = max_backoff_seconds
        self.session = self._create_session(adapter)

    def _create_session(self, adapter: Optional[BaseAdapter]) -> requests.Session:
        """Create and configure HTTP session."""
        session = build_session(self.cookie, inner=adapter)
        session.headers.update({"Authorization": f"Bearer {self.token}"})
        return session

    def api_call(self, method: str, **params: Any) -> dict:
        """
        Call a Web API method.

        Rate-limited calls (HTTP 429) are retried with Fibonacci backoff,
        honoring Retry-After when it asks for longer.

        Raises:
            SlackAPIError: If Slack answers ok=false or retries run out.
            requests.RequestException: On transport failures.
        """
        url = f"{self.api_base_url}/{method}"
        backoff = RateLimitBackoff(self.max_backoff_seconds)

        for tries in range(1, self.max_retries + 1):
            logger.debug(f"Request {tries}/{self.max_retries}: {method}")
            response = self.session.post(url, data=params, timeout=self.request_timeout)

            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After")
                wait_time = backoff.delay(retry_after)
                logger.warning(
                    f"Rate limited on {method} (Retry-After: {retry_after or 'none'}). "
                    f"Waiting {wait_time}s (attempt #{backoff.attempt})"
                )
                time.sleep(wait_time)
                continue

            response.raise_for_status()

            data = response.json()
            if not data.get("ok"):
                raise SlackAPIError(method, data.get("error", "unknown_error"), data)
            return data

        raise SlackAPIError(method, f"rate limited after {self.max_retries} attempts")

    def auth_test(self) -> dict:
        """Check the credentials. Returns user, user_id, team, team_id, url."""
        return self.api_call("auth.test")

    def close(self):
        self.session.close()
