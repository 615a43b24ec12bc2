"""
Cookie-injecting transport.

xoxc-* tokens are tied to a browser session and are only accepted when the
matching ``d`` cookie accompanies every request.
"""

from typing import Optional

import requests
from requests.adapters import BaseAdapter, HTTPAdapter

from slackauth.models import COOKIE_NAME


def append_cookie(existing: Optional[str], cookie: str) -> str:
    """Append the d cookie to a Cookie header value."""
    d_cookie = f"{COOKIE_NAME}={cookie}"
    if existing:
        return f"{existing}; {d_cookie}"
    return d_cookie


class CookieInjectingAdapter(BaseAdapter):
    """Adapter decorator that stamps the d cookie onto every request."""

    def __init__(self, cookie: str, inner: Optional[BaseAdapter] = None):
        super().__init__()
        self.cookie = cookie
        self.inner = inner if inner is not None else HTTPAdapter()

    def send(self, request: requests.PreparedRequest, **kwargs) -> requests.Response:
        if self.cookie:
            # never mutate the caller's request
            request = request.copy()
            request.headers["Cookie"] = append_cookie(request.headers.get("Cookie"), self.cookie)
        return self.inner.send(request, **kwargs)

    def close(self):
        self.inner.close()


def build_session(cookie: str, inner: Optional[BaseAdapter] = None) -> requests.Session:
    """Create a session whose every request carries the d cookie."""
    session = requests.Session()
    adapter = CookieInjectingAdapter(cookie, inner)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session
