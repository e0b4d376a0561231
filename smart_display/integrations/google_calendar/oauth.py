"""
Google OAuth 2.0 authorization flow.

The code exchange runs here, server-side, so the client secret never reaches
the browser. Completion is pushed to the initiator through an
`OAuthFlowRegistry` future keyed by the CSRF `state`, not inferred from a
closed popup window.
"""
import asyncio
import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional
from urllib.parse import urlencode

import httpx

from ...constants import GOOGLE_CALENDAR_SCOPE
from ...db import utcnow
from ...exceptions import ApiError, AuthError, ConfigurationError, SmartDisplayError, ValidationError
from ...utils.http_client import request_json
from .schemas import OAuthTokens
from .tokens import CredentialStore

logger = logging.getLogger(__name__)


class GoogleOAuthClient:
    """Talks to Google's authorization and token endpoints."""

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        http_client: httpx.AsyncClient,
        authorize_url: str = "https://accounts.google.com/o/oauth2/v2/auth",
        token_url: str = "https://oauth2.googleapis.com/token",
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.http_client = http_client
        self.authorize_url = authorize_url
        self.token_url = token_url

    def get_authorization_url(self, redirect_uri: str, state: Optional[str] = None) -> str:
        """
        Build the consent URL.

        `prompt=consent` forces Google to issue a refresh token on every
        authorization.
        """
        if not self.client_id:
            raise ConfigurationError("GOOGLE_CLIENT_ID is not set", title="Google OAuth not configured")

        params = {
            'client_id': self.client_id,
            'redirect_uri': redirect_uri,
            'response_type': 'code',
            'scope': GOOGLE_CALENDAR_SCOPE,
            'access_type': 'offline',
            'prompt': 'consent',
        }
        if state:
            params['state'] = state
        return self.authorize_url + '?' + urlencode(params)

    async def exchange_code(self, code: str, redirect_uri: str) -> OAuthTokens:
        """Authorization code -> tokens."""
        if not code or not redirect_uri:
            raise ValidationError("Authorization code and redirect URI are required")
        return await self._token_request({
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': redirect_uri,
        })

    async def refresh(self, refresh_token: str) -> OAuthTokens:
        """Refresh token -> new access token."""
        return await self._token_request({
            'grant_type': 'refresh_token',
            'refresh_token': refresh_token,
        })

    async def _token_request(self, body: Dict[str, str]) -> OAuthTokens:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError(
                "GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET must be set",
                title="Google OAuth not configured",
            )

        form = dict(body, client_id=self.client_id, client_secret=self.client_secret)
        grant = body['grant_type']
        try:
            data = await request_json(
                self.http_client,
                'POST',
                self.token_url,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data=form,
                service="Google OAuth",
            )
        except ApiError as e:
            logger.error(f"Google {grant} grant failed: {e.status}")
            raise AuthError(
                "Google rejected the authorization. Please reconnect your account.",
                title="Google Calendar authorization failed",
            ) from e

        if not isinstance(data, dict) or 'access_token' not in data:
            raise AuthError("No access_token in token response", title="Google Calendar authorization failed")
        return OAuthTokens.model_validate(data)


@dataclass
class OAuthResult:
    status: str  # "success" | "error"
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"status": self.status, "message": self.message}


@dataclass
class PendingFlow:
    state: str
    user_id: str
    redirect_uri: str
    created_at: float
    future: asyncio.Future = field(repr=False)


class OAuthFlowRegistry:
    """
    Pending authorizations keyed by their `state` parameter.

    The redirect handler resolves the flow's future; the initiator awaits it.
    Flows older than `ttl` seconds are dropped.
    """

    def __init__(self, ttl: float = 600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._flows: Dict[str, PendingFlow] = {}

    def begin(self, user_id: str, redirect_uri: str) -> PendingFlow:
        self.purge_expired()
        flow = PendingFlow(
            state=secrets.token_urlsafe(32),
            user_id=user_id,
            redirect_uri=redirect_uri,
            created_at=self.clock(),
            future=asyncio.get_running_loop().create_future(),
        )
        self._flows[flow.state] = flow
        return flow

    def get(self, state: Optional[str]) -> PendingFlow:
        flow = self._flows.get(state or "")
        if flow is None or self._expired(flow):
            raise ValidationError("Unknown or expired authorization request", title="Authorization failed")
        return flow

    def complete(self, state: str, result: OAuthResult) -> None:
        flow = self._flows.get(state)
        if flow is not None and not flow.future.done():
            flow.future.set_result(result)

    async def wait(self, state: str, user_id: str, timeout: float) -> OAuthResult:
        """
        Wait for the redirect handler to report the outcome.

        Returns a `pending` result when nothing arrived within `timeout`.
        """
        flow = self.get(state)
        if flow.user_id != user_id:
            raise ValidationError("Authorization request belongs to another user", title="Authorization failed")
        try:
            result = await asyncio.wait_for(asyncio.shield(flow.future), timeout=timeout)
        except asyncio.TimeoutError:
            return OAuthResult(status="pending", message="Waiting for authorization")
        self._flows.pop(state, None)
        return result

    def purge_expired(self) -> None:
        for state in [s for s, flow in self._flows.items() if self._expired(flow)]:
            flow = self._flows.pop(state)
            if not flow.future.done():
                flow.future.cancel()

    def _expired(self, flow: PendingFlow) -> bool:
        return self.clock() - flow.created_at > self.ttl

    def __len__(self) -> int:
        return len(self._flows)


class GoogleAuthorizationFlow:
    """Coordinates consent URL, callback handling and credential storage."""

    def __init__(
        self,
        oauth_client: GoogleOAuthClient,
        store: CredentialStore,
        registry: OAuthFlowRegistry,
        redirect_uri: str,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.oauth_client = oauth_client
        self.store = store
        self.registry = registry
        self.redirect_uri = redirect_uri
        self.clock = clock

    def start(self, user_id: str, redirect_uri: Optional[str] = None) -> Dict[str, str]:
        redirect = redirect_uri or self.redirect_uri
        # Build the URL first so a missing client id leaves no dangling flow
        self.oauth_client.get_authorization_url(redirect)
        flow = self.registry.begin(user_id, redirect)
        return {
            "auth_url": self.oauth_client.get_authorization_url(redirect, state=flow.state),
            "state": flow.state,
        }

    async def exchange(self, user_id: str, code: str, redirect_uri: str) -> OAuthTokens:
        """Exchange a code and store the credential."""
        tokens = await self.oauth_client.exchange_code(code, redirect_uri)
        await self.store.save(user_id, tokens, self.clock())
        return tokens

    async def handle_callback(
        self,
        state: Optional[str],
        code: Optional[str] = None,
        error: Optional[str] = None,
    ) -> OAuthResult:
        """Process the provider redirect and resolve the pending flow."""
        flow = self.registry.get(state)

        if error:
            result = OAuthResult(status="error", message=f"Authorization failed: {error}")
        elif not code:
            result = OAuthResult(status="error", message="No authorization code received")
        else:
            try:
                await self.exchange(flow.user_id, code, flow.redirect_uri)
                result = OAuthResult(status="success", message="Google Calendar connected successfully!")
                logger.info(f"✅ Google Calendar connected for user {flow.user_id}")
            except SmartDisplayError as e:
                result = OAuthResult(status="error", message=e.description)

        self.registry.complete(flow.state, result)
        return result
