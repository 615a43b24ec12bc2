"""
Cookie-based token refresh.

Loading the Slack web app with only the ``d`` session cookie returns a page
whose boot data embeds a fresh xoxc-* token. This needs neither Chrome's
on-disk storage nor a running browser.
"""

import logging
import re
from typing import Optional
from urllib.parse import urljoin

import requests

from slackauth.api.transport import append_cookie
from slackauth.errors import NetworkError
from slackauth.models import TOKEN_PREFIX

logger = logging.getLogger(__name__)

APP_URL = "https://app.slack.com"
MAX_BODY_BYTES = 2 * 1024 * 1024
MAX_REDIRECTS = 5

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"

TOKEN_PATTERN = re.compile(rb'"token"\s*:\s*"(xoxc-[a-zA-Z0-9-]+)"')
API_TOKEN_MARKER = b'"api_token":"'


def find_token_in_page(body: bytes) -> str:
    """
    Find an xoxc-* token in a Slack web app page.

    Tries the "token" field of the boot JSON first, then the api_token field.

    Returns:
        The token, or "" if none was found.
    """
    match = TOKEN_PATTERN.search(body)
    if match:
        return match.group(1).decode("ascii")

    idx = body.find(API_TOKEN_MARKER)
    if idx >= 0:
        start = idx + len(API_TOKEN_MARKER)
        end = body.find(b'"', start)
        if end > start:
            token = body[start:end].decode("utf-8", errors="replace")
            if token.startswith(TOKEN_PREFIX):
                return token

    return ""


def _read_capped(response: requests.Response, max_bytes: int) -> bytes:
    body = bytearray()
    for chunk in response.iter_content(chunk_size=64 * 1024):
        body.extend(chunk)
        if len(body) >= max_bytes:
            break
    return bytes(body[:max_bytes])


def refresh_via_cookie(
    cookie: str,
    session: Optional[requests.Session] = None,
    url: str = APP_URL,
    timeout: float = 30,
    max_bytes: int = MAX_BODY_BYTES,
    max_redirects: int = MAX_REDIRECTS,
) -> str:
    """
    Fetch a fresh xoxc-* token using only the d session cookie.

    Redirects are followed by hand so the cookie is re-attached on every hop.

    Returns:
        The new token, or "" if the cookie is empty or the page holds no
        token (the caller should fall back to full extraction).

    Raises:
        NetworkError: If the request fails.
    """
    if not cookie:
        return ""

    own_session = session is None
    if own_session:
        session = requests.Session()

    headers = {
        "Cookie": append_cookie(None, cookie),
        "User-Agent": USER_AGENT,
    }

    response = None
    try:
        current_url = url
        response = session.get(current_url, headers=headers, timeout=timeout, allow_redirects=False, stream=True)

        hops = 0
        while response.is_redirect and hops < max_redirects:
            current_url = urljoin(current_url, response.headers["location"])
            response.close()
            logger.debug(f"Cookie refresh following redirect to {current_url}")
            response = session.get(current_url, headers=headers, timeout=timeout, allow_redirects=False, stream=True)
            hops += 1

        body = _read_capped(response, max_bytes)
    except requests.RequestException as e:
        raise NetworkError(f"cookie refresh request failed: {e}") from e
    finally:
        if response is not None:
            response.close()
        if own_session:
            session.close()

    return find_token_in_page(body)
