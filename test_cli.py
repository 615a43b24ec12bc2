#!/usr/bin/env python3
"""Smoke tests for the slackauth CLI."""

import json
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

sys.path.insert(0, str(Path(__file__).parent / "src"))

from slackauth import __version__
from slackauth.cli import app, mask

runner = CliRunner()


@pytest.fixture
def token_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ["SLACK_TOKEN", "SLACK_COOKIE", "SLACK_OAUTH_CLIENT_ID", "SLACK_OAUTH_CLIENT_SECRET"]:
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "tokens.json"
    monkeypatch.setenv("SLACK_TOKEN_FILE", str(path))
    return path


def test_mask():
    assert mask("") == "(none)"
    assert mask("xoxc-1") == "xoxc-1"
    assert mask("xoxc-1234567890") == "xoxc-12345…"


def test_version():
    result = runner.invoke(app, ["--headless", "version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_status_without_tokens(token_file):
    result = runner.invoke(app, ["--headless", "status"])
    assert result.exit_code == 1
    assert "no_tokens" in result.output


def test_save_then_status(token_file):
    print("TEST: save + status")
    result = runner.invoke(app, ["--headless", "save", "--token", "xoxc-1", "--cookie", "xoxd-1"])
    assert result.exit_code == 0, result.output
    assert json.loads(token_file.read_text())["token"] == "xoxc-1"

    result = runner.invoke(app, ["--headless", "status"])
    assert result.exit_code == 0, result.output
    assert "healthy" in result.output
    assert "browser_session" in result.output
    print("  ✓ saved token reported as healthy")


def test_save_warns_without_cookie(token_file):
    result = runner.invoke(app, ["--headless", "save", "--token", "xoxc-1"])
    assert result.exit_code == 0
    assert "need the d cookie" in result.output


def test_snippet():
    result = runner.invoke(app, ["--headless", "snippet"])
    assert result.exit_code == 0
    assert "localConfig_v2" in result.output


def test_oauth_url_requires_client(token_file):
    result = runner.invoke(app, ["--headless", "oauth-url"])
    assert result.exit_code == 1
    assert "client_id" in result.output


def test_oauth_url(token_file, monkeypatch):
    monkeypatch.setenv("SLACK_OAUTH_CLIENT_ID", "cid")
    monkeypatch.setenv("SLACK_OAUTH_CLIENT_SECRET", "secret")

    result = runner.invoke(app, ["--headless", "oauth-url"])
    assert result.exit_code == 0, result.output
    assert "https://slack.com/oauth/v2/authorize?" in result.output
    assert "client_id=cid" in result.output
    assert "cannot be exchanged" in result.output


def test_oauth_url_help_explains_flow_lifetime():
    result = runner.invoke(app, ["oauth-url", "--help"])
    assert result.exit_code == 0
    # rich wraps the help text inside a box
    text = " ".join(result.output.replace("│", " ").split())
    assert "only in this process" in text


def test_refresh_leaves_oauth_token_alone(token_file):
    runner.invoke(app, ["--headless", "save", "--token", "xoxp-user"])

    result = runner.invoke(app, ["--headless", "refresh"])
    assert result.exit_code == 0, result.output
    assert "do not rotate" in result.output
    assert json.loads(token_file.read_text())["token"] == "xoxp-user"
