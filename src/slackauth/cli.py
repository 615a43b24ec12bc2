"""
slackauth CLI - manage Slack session credentials.

Usage:
    slackauth status            Show token health and refresh capability
    slackauth extract           Extract token + cookie from Chrome
    slackauth refresh           Run one refresh cycle
    slackauth save              Save a token/cookie pasted from the browser
    slackauth snippet           Print the browser console extraction snippet
    slackauth oauth-url         Print an OAuth authorization URL
"""

import json
import logging
from typing import Optional

import requests
import typer

from slackauth import __version__
from slackauth.auth.extractor import extract_for_web, extraction_snippet
from slackauth.auth.manager import CredentialManager
from slackauth.auth.oauth import OAuthFlowRegistry
from slackauth.auth.storage import CredentialStore, save_tokens
from slackauth.config import Settings, load_settings
from slackauth.errors import SlackAPIError, SlackAuthError
from slackauth.models import CredentialSource
from slackauth.utils.console import (
    set_headless,
    print_header,
    print_info,
    print_success,
    print_error,
    print_warning,
    print_table,
    HEALTH_STYLES,
    console,
)

app = typer.Typer(
    name="slackauth",
    help="🔐 Slack session credential extraction and rotation",
    add_completion=True,
    rich_markup_mode="rich",
)


def setup_logging(verbose: bool, headless: bool):
    """Configure logging based on options."""
    level = logging.DEBUG if verbose else logging.INFO

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if headless:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root_logger.addHandler(handler)
        root_logger.setLevel(level)
    else:
        from rich.logging import RichHandler

        handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_time=verbose,
            show_path=verbose,
            markup=False,
        )
        root_logger.addHandler(handler)
        root_logger.setLevel(level if verbose else logging.WARNING)

    logging.getLogger("slackauth").setLevel(level)

    for noisy_logger in ['urllib3', 'urllib3.connectionpool', 'requests']:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    set_headless(headless)


def mask(value: str, keep: int = 10) -> str:
    """Shorten a secret for display."""
    if not value:
        return "(none)"
    if len(value) <= keep:
        return value
    return value[:keep] + "…"


def _store_without_extraction(settings: Settings) -> CredentialStore:
    """Load file or config credentials without touching Chrome."""
    store = CredentialStore(settings.token_file)
    if not store.load_from_file() and settings.token:
        store.set(settings.token, settings.cookie, CredentialSource.CONFIG)
    return store


@app.callback()
def main(
    ctx: typer.Context,
    headless: bool = typer.Option(False, "--headless", "-H", help="Run without fancy output"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
):
    """🔐 slackauth - Slack session credentials without an API token"""
    setup_logging(verbose, headless)
    ctx.ensure_object(dict)
    ctx.obj["headless"] = headless
    ctx.obj["verbose"] = verbose


@app.command()
def status(
    check: bool = typer.Option(False, "--check", "-c", help="Also verify the token with auth.test"),
):
    """📋 Show token health and refresh capability."""
    print_header("Token Status", "Current credentials and refresh options")

    settings = load_settings()
    manager = CredentialManager(settings, store=_store_without_extraction(settings))

    refresh = manager.refresh_status()
    health = manager.token_status()

    print_table(
        "Credentials",
        {
            "Status": health["status"],
            "Token type": refresh.token_type,
            "Source": refresh.source or "(none)",
            "Updated": refresh.updated_at or "never",
            "Age (hours)": health["age_hours"],
            "Session cookie": "✓ Yes" if refresh.has_cookie else "✗ No",
            "Token file": settings.token_file,
        },
        styles={"Status": HEALTH_STYLES.get(health["status"], "green")},
    )

    print_table("Refresh Options", {
        "Cookie refresh": "✓" if refresh.can_cookie_refresh else "✗",
        "Chrome refresh": "✓" if refresh.can_chrome_refresh else "✗",
        "Needs rotation": "Yes" if refresh.needs_refresh else "No",
    })

    if health["status"] == "no_tokens":
        print_info("Get credentials with: slackauth extract --save")
        raise typer.Exit(1)

    if check:
        try:
            manager.configure(start_background=False)
            result = manager.get_client().auth_test()
        except (SlackAuthError, requests.RequestException) as e:
            print_error(f"auth.test failed: {e}")
            raise typer.Exit(1)
        print_success(f"Authenticated as {result.get('user')} on {result.get('team')}")


@app.command()
def extract(
    save: bool = typer.Option(False, "--save", "-s", help="Persist the extracted credentials"),
    show: bool = typer.Option(False, "--show", help="Print full values as JSON"),
):
    """🔍 Extract token and cookie from Google Chrome."""
    print_header("Chrome Extraction", "Reading Slack session from local Chrome profiles")

    result = extract_for_web()
    if not result.success:
        print_error(result.error or "extraction failed")
        raise typer.Exit(1)

    print_success(f"Token:  {mask(result.token)}")
    print_success(f"Cookie: {mask(result.cookie)}")

    if show:
        typer.echo(json.dumps({"token": result.token, "cookie": result.cookie}))

    if save:
        settings = load_settings()
        try:
            save_tokens(result.token, result.cookie, settings.token_file)
        except OSError as e:
            print_error(f"Failed to save: {e}")
            raise typer.Exit(1)
        print_success(f"Saved to {settings.token_file}")


@app.command()
def refresh(
    chrome: bool = typer.Option(False, "--chrome", help="Skip the cookie refresh and extract from Chrome"),
):
    """🔄 Run one refresh cycle and verify the result."""
    print_header("Refresh", "Rotating Slack session credentials")

    manager = CredentialManager()
    try:
        manager.configure(start_background=False)
    except SlackAuthError as e:
        print_error(str(e))
        raise typer.Exit(1)

    current = manager.refresh_status()
    if not chrome and not current.needs_refresh:
        print_info(f"{current.token_type} tokens do not rotate; use --chrome to replace them")
        return

    ok = manager.refresh_from_chrome() if chrome else manager.refresh_once()
    if not ok:
        print_error(
            "Could not refresh tokens. Make sure Chrome is running with a Slack tab open "
            "(app.slack.com) and you are logged in."
        )
        raise typer.Exit(1)

    try:
        result = manager.get_client().auth_test()
    except (SlackAPIError, requests.RequestException) as e:
        print_error(f"Refreshed tokens but auth failed: {e}")
        raise typer.Exit(1)

    print_success(f"Refreshed ({manager.store.info().source.value})")
    print_info(f"User: {result.get('user')} ({result.get('user_id')})")
    print_info(f"Team: {result.get('team')}")


@app.command("save")
def save_command(
    token: str = typer.Option(..., "--token", "-t", help="Slack token (xoxc-*, xoxp-*, xoxb-*)"),
    cookie: str = typer.Option("", "--cookie", "-c", help="Slack d cookie (xoxd-*)"),
):
    """💾 Save credentials copied from the browser."""
    settings = load_settings()
    try:
        info = save_tokens(token, cookie, settings.token_file)
    except (ValueError, OSError) as e:
        print_error(f"Failed to save: {e}")
        raise typer.Exit(1)

    print_success(f"Saved to {settings.token_file}")
    if token.startswith("xoxc-") and not info.has_cookie:
        print_warning("xoxc-* tokens need the d cookie; pass --cookie xoxd-...")


@app.command()
def snippet():
    """📋 Print a browser console snippet that reveals the token and cookie."""
    print_info("Open app.slack.com, open the developer console and run:")
    typer.echo(extraction_snippet())
    print_info("Then run: slackauth save --token <token> --cookie <cookie>")


@app.command("oauth-url")
def oauth_url(
    redirect_uri: Optional[str] = typer.Option(None, "--redirect-uri", "-r", help="Override the configured redirect URI"),
):
    """
    🌐 Print an OAuth (PKCE) authorization URL.

    The PKCE verifier lives only in this process, so the printed URL is for
    inspecting the authorize request. A long-running process that holds the
    same flow registry has to receive the callback and exchange the code.
    """
    settings = load_settings()
    registry = OAuthFlowRegistry(timeout=settings.request_timeout)
    try:
        started = registry.start(
            settings.oauth_client_id,
            settings.oauth_client_secret,
            redirect_uri or settings.oauth_redirect_uri,
        )
    except SlackAuthError as e:
        print_error(str(e))
        print_info("Set SLACK_OAUTH_CLIENT_ID and SLACK_OAUTH_CLIENT_SECRET")
        raise typer.Exit(1)

    print_info(f"Flow: {started.flow_id}")
    typer.echo(started.authorize_url)
    print_warning("The flow ends with this process; the URL cannot be exchanged.")


@app.command()
def version():
    """Show version information."""
    console.print(f"slackauth version {__version__}")


if __name__ == "__main__":
    app()
