"""
Slack OAuth v2 user-token flow with PKCE.

The browser redirect and the code waiting for the result run in different
request contexts, so the flow is split into start / callback / poll. Each
flow is addressed by the id returned from start(), so concurrent logins do
not overwrite each other.

States: no_flow (unknown id) -> pending -> complete | error
"""

import base64
import hashlib
import hmac
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlencode

import requests

from slackauth.errors import OAuthError
from slackauth.models import OAuthPollResult, OAuthStartResult

logger = logging.getLogger(__name__)

SLACK_AUTHORIZE_URL = "https://slack.com/oauth/v2/authorize"
SLACK_TOKEN_URL = "https://slack.com/api/oauth.v2.access"

SLACK_USER_SCOPES = [
    "channels:history", "channels:read", "channels:write",
    "chat:write", "emoji:read", "files:read", "files:write",
    "groups:history", "groups:read", "groups:write",
    "im:history", "im:read", "im:write",
    "mpim:history", "mpim:read", "mpim:write",
    "pins:read", "pins:write", "reactions:read", "reactions:write",
    "reminders:read", "reminders:write", "search:read", "stars:read",
    "team:read", "usergroups:read", "users:read", "users:read.email",
    "users.profile:write", "bookmarks:read", "bookmarks:write",
]

# Flows older than this are dropped when a new flow starts
FLOW_MAX_AGE_SECONDS = 15 * 60


def generate_pkce() -> tuple[str, str]:
    """
    Generate PKCE code verifier and challenge.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    code_verifier = secrets.token_urlsafe(32)

    # S256 challenge
    code_challenge = base64.urlsafe_b64encode(
        hashlib.sha256(code_verifier.encode()).digest()
    ).decode().rstrip("=")

    return code_verifier, code_challenge


@dataclass
class OAuthFlow:
    """One in-flight authorization. Mutated only under its own lock."""
    flow_id: str
    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str
    state: str = field(repr=False)
    code_verifier: str = field(repr=False)
    created_at: float = field(default_factory=time.monotonic)
    token: str = field(default="", repr=False)
    error: str = ""
    done: bool = False
    exchanging: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def result(self) -> OAuthPollResult:
        if not self.done:
            return OAuthPollResult(status="pending")
        if self.error:
            return OAuthPollResult(status="error", error=self.error)
        return OAuthPollResult(status="complete", token=self.token)


class OAuthFlowRegistry:
    """Tracks OAuth flows by id."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        authorize_url: str = SLACK_AUTHORIZE_URL,
        token_url: str = SLACK_TOKEN_URL,
        user_scopes: Optional[list[str]] = None,
        timeout: float = 30,
    ):
        self.session = session or requests.Session()
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.user_scopes = user_scopes if user_scopes is not None else SLACK_USER_SCOPES
        self.timeout = timeout
        self._lock = threading.Lock()
        self._flows: dict[str, OAuthFlow] = {}

    def start(self, client_id: str, client_secret: str, redirect_uri: str) -> OAuthStartResult:
        """
        Begin a new flow.

        Returns:
            The flow id and the URL the user must open.

        Raises:
            OAuthError: If the client id or secret is missing.
        """
        if not client_id:
            raise OAuthError("slack OAuth client_id is not configured")
        if not client_secret:
            raise OAuthError("slack OAuth client_secret is not configured")

        code_verifier, code_challenge = generate_pkce()
        flow = OAuthFlow(
            flow_id=secrets.token_urlsafe(16),
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            state=secrets.token_urlsafe(32),
            code_verifier=code_verifier,
        )

        params = {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "user_scope": ",".join(self.user_scopes),
            "state": flow.state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        authorize_url = f"{self.authorize_url}?" + urlencode(params)

        with self._lock:
            self._prune_locked()
            self._flows[flow.flow_id] = flow

        logger.info(f"Started OAuth flow {flow.flow_id}")
        return OAuthStartResult(flow_id=flow.flow_id, authorize_url=authorize_url)

    def callback(self, flow_id: str, code: str, state: str) -> OAuthPollResult:
        """
        Handle the redirect back from Slack.

        A state mismatch or a failed exchange puts the flow in the error
        state; the outcome is reported through poll() and also returned.

        Raises:
            OAuthError: If the flow is unknown or has already finished.
        """
        flow = self._get(flow_id)
        if flow is None:
            raise OAuthError("no OAuth flow in progress")

        with flow.lock:
            if flow.done or flow.exchanging:
                raise OAuthError("OAuth flow already completed")

            if not hmac.compare_digest(flow.state.encode(), (state or "").encode()):
                flow.error = "Invalid state parameter - possible CSRF attack"
                flow.done = True
                logger.warning(f"OAuth flow {flow_id}: state mismatch")
                return flow.result()

            flow.exchanging = True

        # the exchange runs without the lock so poll() stays responsive
        token, error = "", ""
        try:
            token = self._exchange_code(flow, code)
        except OAuthError as e:
            error = str(e)
        except Exception as e:
            logger.error(f"OAuth flow {flow_id}: unexpected exchange failure", exc_info=True)
            error = f"Token exchange failed: {e}"

        with flow.lock:
            flow.token = token
            flow.error = error
            flow.exchanging = False
            flow.done = True
            result = flow.result()

        if error:
            logger.warning(f"OAuth flow {flow_id} failed: {error}")
        else:
            logger.info(f"OAuth flow {flow_id} complete")
        return result

    def poll(self, flow_id: str) -> OAuthPollResult:
        """Report a flow's state. Read-only; may be called repeatedly."""
        flow = self._get(flow_id)
        if flow is None:
            return OAuthPollResult(status="no_flow", error="No OAuth flow in progress")

        with flow.lock:
            return flow.result()

    def discard(self, flow_id: str):
        with self._lock:
            self._flows.pop(flow_id, None)

    def _get(self, flow_id: str) -> Optional[OAuthFlow]:
        with self._lock:
            return self._flows.get(flow_id)

    def _prune_locked(self):
        cutoff = time.monotonic() - FLOW_MAX_AGE_SECONDS
        for flow_id in [f.flow_id for f in self._flows.values() if f.created_at < cutoff]:
            del self._flows[flow_id]

    def _exchange_code(self, flow: OAuthFlow, code: str) -> str:
        """Exchange the authorization code for a user token (server-to-server)."""
        data = {
            "code": code,
            "redirect_uri": flow.redirect_uri,
            "client_id": flow.client_id,
            "client_secret": flow.client_secret,
            "code_verifier": flow.code_verifier,
        }

        try:
            response = self.session.post(
                self.token_url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise OAuthError(f"Token exchange failed: {e}") from e

        if response.status_code != 200:
            raise OAuthError(f"Slack returned {response.status_code}: {response.text}")

        try:
            body = response.json()
        except ValueError as e:
            raise OAuthError(f"Failed to parse token response: {e}") from e

        if not isinstance(body, dict):
            raise OAuthError("Failed to parse token response: expected a JSON object")

        if not body.get("ok") or body.get("error"):
            raise OAuthError(f"Slack OAuth error: {body.get('error') or 'unknown error'}")

        authed_user = body.get("authed_user")
        if not isinstance(authed_user, dict):
            raise OAuthError("No user access token in response")

        access_token = authed_user.get("access_token", "")
        if not isinstance(access_token, str) or not access_token:
            raise OAuthError("No user access token in response")

        return access_token
