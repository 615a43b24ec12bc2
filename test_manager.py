#!/usr/bin/env python3
"""
Tests for the credential manager: acquisition order, refresh cycle,
client swaps and diagnostics.
"""

import json
import sys
import threading
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent / "src"))

from slackauth.auth import manager as manager_module
from slackauth.auth.extractor import ChromeExtractor
from slackauth.auth.manager import CredentialManager, classify_token
from slackauth.auth.oauth import OAuthFlowRegistry
from slackauth.auth.providers import ConfigProvider, acquire_first
from slackauth.auth.storage import CredentialStore
from slackauth.config import Settings
from slackauth.errors import ConfigurationError, ExtractionError, NetworkError, SlackAPIError
from slackauth.models import CredentialSource, ExtractedTokens

TOKEN = "xoxc-chrome-token"
COOKIE = "xoxd-chrome-cookie"


class FakeClient:
    def __init__(self, token, cookie, fail=False):
        self.token = token
        self.cookie = cookie
        self.fail = fail

    def auth_test(self):
        if self.fail:
            raise SlackAPIError("auth.test", "invalid_auth")
        return {"ok": True, "user": "alice"}


class FakeExtractor(ChromeExtractor):
    """Counts runs; returns fixed values or raises."""

    def __init__(self, token=TOKEN, cookie=COOKIE):
        super().__init__(check_platform=False)
        self.token = token
        self.cookie = cookie
        self.runs = 0

    def _extract_locked(self):
        self.runs += 1
        partial = ExtractedTokens(token=self.token, cookie=self.cookie)
        if self.token and self.cookie:
            return partial
        raise ExtractionError("incomplete", partial=partial if (self.token or self.cookie) else None)


class FakeRefresher:
    def __init__(self, token="xoxc-refreshed", error=None):
        self.token = token
        self.error = error
        self.calls = []
        self.called = threading.Event()

    def __call__(self, cookie, **kwargs):
        self.calls.append((cookie, kwargs))
        self.called.set()
        if self.error is not None:
            raise self.error
        return self.token


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(token="", cookie="", token_file=tmp_path / "tokens.json")
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_manager(tmp_path, extractor=None, refresher=None, **overrides) -> CredentialManager:
    settings = make_settings(tmp_path, **overrides)
    return CredentialManager(
        settings,
        extractor=extractor or FakeExtractor(),
        refresher=refresher or FakeRefresher(),
        client_factory=FakeClient,
        oauth=OAuthFlowRegistry(session=object()),
    )


def write_token_file(path: Path, token: str, cookie: str = ""):
    path.write_text(json.dumps({"token": token, "cookie": cookie, "updated_at": "2024-01-01T00:00:00Z"}))


# --- acquisition ---

def test_configure_from_file_skips_chrome(tmp_path):
    """A valid token file means zero extraction attempts."""
    print("TEST: configure from token file")
    write_token_file(tmp_path / "tokens.json", "xoxc-file", "xoxd-file")
    extractor = FakeExtractor()
    manager = make_manager(tmp_path, extractor=extractor, token="xoxp-config")

    manager.configure(start_background=False)

    assert extractor.runs == 0
    assert manager.store.get() == ("xoxc-file", "xoxd-file")
    assert manager.store.info().source == CredentialSource.FILE
    assert manager.get_client().token == "xoxc-file"
    print("  ✓ file wins over config and Chrome")


def test_configure_from_config(tmp_path):
    extractor = FakeExtractor()
    manager = make_manager(tmp_path, extractor=extractor, token="xoxp-config")

    manager.configure(start_background=False)

    assert extractor.runs == 0
    assert manager.store.info().source == CredentialSource.CONFIG
    assert not (tmp_path / "tokens.json").exists()


def test_configure_skips_binary_token_file(tmp_path):
    (tmp_path / "tokens.json").write_bytes(b"\xff\xfe\x00garbage")
    extractor = FakeExtractor()
    manager = make_manager(tmp_path, extractor=extractor, token="xoxp-config")

    manager.configure(start_background=False)

    assert extractor.runs == 0
    assert manager.store.get()[0] == "xoxp-config"
    assert manager.store.info().source == CredentialSource.CONFIG


def test_configure_explicit_arguments(tmp_path):
    manager = make_manager(tmp_path)
    manager.configure(token="xoxb-bot", cookie="", start_background=False)
    assert manager.get_client().token == "xoxb-bot"


def test_configure_from_chrome_persists(tmp_path):
    manager = make_manager(tmp_path)
    manager.configure(start_background=False)

    assert manager.store.info().source == CredentialSource.CHROME
    saved = json.loads((tmp_path / "tokens.json").read_text())
    assert (saved["token"], saved["cookie"]) == (TOKEN, COOKIE)


def test_configure_token_without_cookie(tmp_path):
    """A Chrome token with no cookie is accepted with a warning."""
    manager = make_manager(tmp_path, extractor=FakeExtractor(cookie=""))
    manager.configure(start_background=False)

    assert manager.store.get() == (TOKEN, "")
    assert manager.get_client().cookie == ""


def test_configure_cookie_only_fails(tmp_path):
    manager = make_manager(tmp_path, extractor=FakeExtractor(token=""))
    with pytest.raises(ConfigurationError):
        manager.configure(start_background=False)


def test_configure_failure_lists_attempts(tmp_path):
    print("\nTEST: configure with no credentials")
    manager = make_manager(tmp_path, extractor=FakeExtractor(token="", cookie=""))

    with pytest.raises(ConfigurationError) as excinfo:
        manager.configure(start_background=False)

    msg = str(excinfo.value)
    assert "file: nothing found" in msg
    assert "config: nothing found" in msg
    assert "chrome: incomplete" in msg
    assert "slackauth save" in msg
    print("  ✓ error explains what was tried")


def test_get_client_before_configure(tmp_path):
    manager = make_manager(tmp_path)
    with pytest.raises(ConfigurationError):
        manager.get_client()
    assert not manager.healthy()


def test_acquire_first_stops_at_first_success():
    class Exploding(ConfigProvider):
        def acquire(self):
            raise AssertionError("must not be reached")

    cred, attempts = acquire_first([ConfigProvider(""), ConfigProvider("xoxp-1"), Exploding("x")])
    assert cred.token == "xoxp-1"
    assert attempts == ["config: nothing found"]


# --- refresh ---

def test_refresh_prefers_cookie(tmp_path):
    print("\nTEST: refresh_once via cookie")
    refresher = FakeRefresher()
    extractor = FakeExtractor()
    manager = make_manager(tmp_path, extractor=extractor, refresher=refresher, token="xoxc-old", cookie="xoxd-1")
    manager.configure(start_background=False)
    old_client = manager.get_client()

    assert manager.refresh_once()

    assert extractor.runs == 0
    cookie, kwargs = refresher.calls[0]
    assert cookie == "xoxd-1"
    assert kwargs["url"] == "https://app.slack.com"
    assert kwargs["max_bytes"] == 2 * 1024 * 1024
    assert kwargs["max_redirects"] == 5

    assert manager.store.get() == ("xoxc-refreshed", "xoxd-1")
    assert manager.store.info().source == CredentialSource.COOKIE_REFRESH
    new_client = manager.get_client()
    assert new_client is not old_client
    assert old_client.token == "xoxc-old"
    assert json.loads((tmp_path / "tokens.json").read_text())["token"] == "xoxc-refreshed"
    print("  ✓ token rotated, client swapped, file saved")


@pytest.mark.parametrize("refresher", [FakeRefresher(token=""), FakeRefresher(error=NetworkError("down"))])
def test_refresh_falls_back_to_chrome(tmp_path, refresher):
    extractor = FakeExtractor()
    manager = make_manager(tmp_path, extractor=extractor, refresher=refresher, token="xoxc-old", cookie="xoxd-1")
    manager.configure(start_background=False)

    assert manager.refresh_once()
    assert extractor.runs == 1
    assert manager.store.get() == (TOKEN, COOKIE)
    assert manager.store.info().source == CredentialSource.CHROME


def test_refresh_without_cookie_goes_to_chrome(tmp_path):
    refresher = FakeRefresher()
    extractor = FakeExtractor()
    manager = make_manager(tmp_path, extractor=extractor, refresher=refresher, token="xoxc-config")
    manager.configure(start_background=False)

    assert manager.refresh_once()
    assert refresher.calls == []
    assert extractor.runs == 1


@pytest.mark.parametrize("token", ["xoxp-config", "xoxb-bot"])
def test_refresh_skips_non_session_tokens(tmp_path, token):
    refresher = FakeRefresher()
    extractor = FakeExtractor()
    manager = make_manager(tmp_path, extractor=extractor, refresher=refresher, token=token, cookie="xoxd-1")
    manager.configure(start_background=False)

    assert not manager.refresh_once()
    assert refresher.calls == []
    assert extractor.runs == 0
    assert manager.store.get() == (token, "xoxd-1")


def test_refresh_failure_keeps_credentials(tmp_path):
    manager = make_manager(
        tmp_path,
        extractor=FakeExtractor(token="", cookie=""),
        refresher=FakeRefresher(token=""),
        token="xoxc-old",
        cookie="xoxd-1",
    )
    manager.configure(start_background=False)
    client = manager.get_client()

    assert not manager.refresh_once()
    assert manager.store.get() == ("xoxc-old", "xoxd-1")
    assert manager.get_client() is client


def test_background_refresh_runs_and_stops(tmp_path):
    print("\nTEST: background refresh thread")
    refresher = FakeRefresher()
    manager = make_manager(
        tmp_path,
        refresher=refresher,
        token="xoxc-old",
        cookie="xoxd-1",
        refresh_interval_hours=0.05 / 3600,
    )

    with manager:
        manager.configure()
        assert manager.running
        assert refresher.called.wait(5)

    assert not manager.running
    assert manager.store.get()[0] == "xoxc-refreshed"
    print("  ✓ refreshed in background and stopped on close")


def test_oauth_token_installed(tmp_path):
    manager = make_manager(tmp_path, token="xoxc-old", cookie="xoxd-1")
    manager.configure(start_background=False)

    manager.apply_oauth_token("xoxp-user")

    assert manager.store.get() == ("xoxp-user", "")
    assert manager.store.info().source == CredentialSource.OAUTH
    assert manager.refresh_status().token_type == "oauth_user"

    # an installed OAuth token survives later refresh cycles
    assert not manager.refresh_once()
    assert manager.store.get() == ("xoxp-user", "")


def test_finish_oauth_pending(tmp_path):
    manager = make_manager(tmp_path, token="xoxc-old")
    manager.configure(start_background=False)
    assert manager.finish_oauth("missing").status == "no_flow"
    assert manager.store.get()[0] == "xoxc-old"


# --- diagnostics ---

def test_classify_token():
    assert classify_token("xoxp-1") == "oauth_user"
    assert classify_token("xoxc-1") == "browser_session"
    assert classify_token("xoxb-1") == "bot"
    assert classify_token("") == "unknown"


def test_refresh_status(tmp_path, monkeypatch):
    monkeypatch.setattr(manager_module, "can_extract_from_chrome", lambda: True)
    manager = make_manager(tmp_path, token="xoxc-1", cookie="xoxd-1")
    manager.configure(start_background=False)

    status = manager.refresh_status()
    assert status.token_type == "browser_session"
    assert status.has_cookie and status.can_cookie_refresh and status.can_chrome_refresh
    assert status.needs_refresh and not status.oauth_token
    assert status.source == "config"
    assert status.updated_at.endswith("Z")

    manager.store.set("xoxc-1", "")
    assert not manager.refresh_status().can_cookie_refresh

    monkeypatch.setattr(manager_module, "can_extract_from_chrome", lambda: False)
    assert not manager.refresh_status().can_chrome_refresh


def test_token_status(tmp_path):
    manager = make_manager(tmp_path, refresh_interval_hours=4)
    assert manager.token_status()["status"] == "no_tokens"

    manager.configure(token="xoxc-1", cookie="xoxd-1", start_background=False)
    status = manager.token_status()
    assert status["status"] == "healthy"
    assert status["source"] == "config"
    assert status["auto_refresh"]["interval"] == "4 hours"
    assert status["auto_refresh"]["enabled"] is False


def test_healthy(tmp_path):
    manager = CredentialManager(
        make_settings(tmp_path, token="xoxc-1", cookie="xoxd-1"),
        store=CredentialStore(tmp_path / "tokens.json"),
        extractor=FakeExtractor(),
        client_factory=lambda t, c: FakeClient(t, c, fail=True),
    )
    manager.configure(start_background=False)
    assert not manager.healthy()
