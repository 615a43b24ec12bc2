#!/usr/bin/env python3
"""Tests for the cookie-injecting transport and the Slack API client."""

import io
import json
import sys
from pathlib import Path

import pytest
import requests
from requests.adapters import BaseAdapter

sys.path.insert(0, str(Path(__file__).parent / "src"))

from slackauth.api import client as client_module
from slackauth.api.client import SlackAPIClient
from slackauth.api.transport import CookieInjectingAdapter, append_cookie, build_session
from slackauth.errors import SlackAPIError
from slackauth.utils.backoff import RateLimitBackoff, fibonacci_delays, parse_retry_after


def make_response(request, status=200, body=b"", headers=None):
    response = requests.Response()
    response.status_code = status
    response.reason = "OK" if status < 400 else "Error"
    response.headers.update(headers or {})
    response.raw = io.BytesIO(body)
    response.request = request
    response.url = request.url
    return response


class FakeAdapter(BaseAdapter):
    """Records requests and answers from a list of (status, body, headers)."""

    def __init__(self, replies=None):
        super().__init__()
        self.replies = list(replies or [])
        self.requests = []

    def send(self, request, **kwargs):
        self.requests.append(request)
        status, body, headers = self.replies.pop(0) if self.replies else (200, b"{}", {})
        if isinstance(body, dict):
            body = json.dumps(body).encode()
        return make_response(request, status, body, headers)

    def close(self):
        pass


# --- transport ---

def test_append_cookie():
    print("TEST: append_cookie")
    assert append_cookie(None, "xoxd-1") == "d=xoxd-1"
    assert append_cookie("", "xoxd-1") == "d=xoxd-1"
    assert append_cookie("a=b", "xoxd-1") == "a=b; d=xoxd-1"
    print("  ✓ header built for all cases")


def test_session_injects_cookie():
    """Every request leaving the session carries the d cookie."""
    print("\nTEST: cookie-injecting session")
    fake = FakeAdapter()
    session = build_session("xoxd-1", inner=fake)

    session.get("https://slack.com/api/one")
    session.get("https://slack.com/api/two", headers={"Cookie": "lang=en"})

    assert fake.requests[0].headers["Cookie"] == "d=xoxd-1"
    assert fake.requests[1].headers["Cookie"] == "lang=en; d=xoxd-1"
    print("  ✓ cookie added and appended")


def test_adapter_does_not_mutate_request():
    fake = FakeAdapter()
    adapter = CookieInjectingAdapter("xoxd-1", inner=fake)
    request = requests.Request("GET", "https://slack.com/api/x", headers={"Cookie": "a=b"}).prepare()

    adapter.send(request)

    assert request.headers["Cookie"] == "a=b"
    assert fake.requests[0].headers["Cookie"] == "a=b; d=xoxd-1"
    assert fake.requests[0] is not request


def test_adapter_passes_through_without_cookie():
    fake = FakeAdapter()
    adapter = CookieInjectingAdapter("", inner=fake)
    request = requests.Request("GET", "https://slack.com/api/x").prepare()

    adapter.send(request)
    assert "Cookie" not in fake.requests[0].headers


# --- backoff ---

def test_fibonacci_delays():
    delays = fibonacci_delays(max_seconds=10)
    assert [next(delays) for _ in range(8)] == [1, 1, 2, 3, 5, 8, 10, 10]


def test_parse_retry_after():
    assert parse_retry_after(None) == 0
    assert parse_retry_after("") == 0
    assert parse_retry_after(" 7 ") == 7
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0


def test_backoff_honors_retry_after():
    backoff = RateLimitBackoff(max_seconds=30)
    assert backoff.delay() == 1
    assert backoff.delay("10") == 10
    assert backoff.delay("100") == 30
    assert backoff.attempt == 3


# --- client ---

def test_client_sends_token_and_cookie():
    print("\nTEST: SlackAPIClient auth_test")
    fake = FakeAdapter([(200, {"ok": True, "user": "alice", "team": "acme"}, {})])
    client = SlackAPIClient("xoxc-1", "xoxd-1", adapter=fake)

    result = client.auth_test()

    assert result["user"] == "alice"
    request = fake.requests[0]
    assert request.url == "https://slack.com/api/auth.test"
    assert request.headers["Authorization"] == "Bearer xoxc-1"
    assert request.headers["Cookie"] == "d=xoxd-1"
    print("  ✓ bearer token and d cookie sent")


def test_client_raises_on_not_ok():
    fake = FakeAdapter([(200, {"ok": False, "error": "invalid_auth"}, {})])
    client = SlackAPIClient("xoxc-1", "xoxd-1", adapter=fake)

    with pytest.raises(SlackAPIError) as excinfo:
        client.auth_test()
    assert excinfo.value.error == "invalid_auth"
    assert excinfo.value.method == "auth.test"


def test_client_retries_rate_limits(monkeypatch):
    sleeps = []
    monkeypatch.setattr(client_module.time, "sleep", sleeps.append)
    fake = FakeAdapter([
        (429, b"", {"Retry-After": "3"}),
        (429, b"", {}),
        (200, {"ok": True}, {}),
    ])
    client = SlackAPIClient("xoxp-1", adapter=fake)

    assert client.api_call("conversations.list", limit=10)["ok"]
    assert sleeps == [3, 1]
    assert len(fake.requests) == 3
    assert fake.requests[0].body == "limit=10"


def test_client_gives_up_after_max_retries(monkeypatch):
    monkeypatch.setattr(client_module.time, "sleep", lambda s: None)
    fake = FakeAdapter([(429, b"", {})] * 3)
    client = SlackAPIClient("xoxp-1", max_retries=3, adapter=fake)

    with pytest.raises(SlackAPIError, match="rate limited"):
        client.api_call("users.list")


def test_client_raises_http_errors():
    fake = FakeAdapter([(500, b"oops", {})])
    client = SlackAPIClient("xoxp-1", adapter=fake)

    with pytest.raises(requests.HTTPError):
        client.auth_test()
