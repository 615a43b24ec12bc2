"""Slack Web API client and cookie-injecting transport."""

from slackauth.api.client import SlackAPIClient
from slackauth.api.transport import CookieInjectingAdapter, append_cookie, build_session

__all__ = [
    "SlackAPIClient",
    "CookieInjectingAdapter",
    "append_cookie",
    "build_session",
]
