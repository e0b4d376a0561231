"""Google Calendar credential storage and access-token refresh."""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...db import session_scope, utcnow
from ...exceptions import ConfigurationError
from ...models import GoogleCalendarCredential
from .schemas import OAuthTokens

logger = logging.getLogger(__name__)


class CredentialStore:
    """Persisted OAuth credentials, one row per user."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get(self, user_id: str) -> Optional[GoogleCalendarCredential]:
        async with session_scope(self.session_maker) as db:
            result = await db.execute(
                select(GoogleCalendarCredential).where(GoogleCalendarCredential.user_id == user_id)
            )
            return result.scalar_one_or_none()

    async def save(self, user_id: str, tokens: OAuthTokens, now: datetime) -> GoogleCalendarCredential:
        """Create or overwrite the credential after an authorization-code exchange."""
        expires_at = now + timedelta(seconds=tokens.expires_in)
        async with session_scope(self.session_maker) as db:
            result = await db.execute(
                select(GoogleCalendarCredential).where(GoogleCalendarCredential.user_id == user_id)
            )
            credential = result.scalar_one_or_none()
            if credential is None:
                credential = GoogleCalendarCredential(user_id=user_id)
                db.add(credential)
            credential.access_token = tokens.access_token
            # Google may omit the refresh token on re-consent; keep the one we have
            if tokens.refresh_token:
                credential.refresh_token = tokens.refresh_token
            credential.expires_at = expires_at
            credential.scope = tokens.scope
            credential.is_connected = True
            await db.flush()
            logger.info(f"Stored Google Calendar credential for user {user_id}")
            return credential

    async def update_access_token(self, user_id: str, access_token: str, expires_at: datetime) -> None:
        async with session_scope(self.session_maker) as db:
            result = await db.execute(
                select(GoogleCalendarCredential).where(GoogleCalendarCredential.user_id == user_id)
            )
            credential = result.scalar_one_or_none()
            if credential is None:
                raise ConfigurationError("Google Calendar was disconnected during token refresh")
            credential.access_token = access_token
            credential.expires_at = expires_at

    async def delete(self, user_id: str) -> bool:
        async with session_scope(self.session_maker) as db:
            result = await db.execute(
                delete(GoogleCalendarCredential).where(GoogleCalendarCredential.user_id == user_id)
            )
            return result.rowcount > 0


class TokenRefresher:
    """
    Hands out a currently valid access token for one user.

    The stored token is returned as-is while `now < expires_at`. Once it has
    expired, exactly one refresh-token grant is issued and the new token is
    persisted before it is returned. A failed refresh raises AuthError and
    leaves the stored credential untouched; it is not retried, the user has
    to re-authorize.
    """

    def __init__(
        self,
        store: CredentialStore,
        oauth_client,
        user_id: str,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.oauth_client = oauth_client
        self.user_id = user_id
        self.clock = clock

    async def get_valid_access_token(self) -> str:
        credential = await self.store.get(self.user_id)
        if credential is None:
            raise ConfigurationError(
                "Connect your Google Calendar in settings first",
                title="Google Calendar not configured",
            )

        now = self.clock()
        if now < credential.expires_at:
            return credential.access_token

        if not credential.refresh_token:
            raise ConfigurationError(
                "No refresh token available. Please reconnect your Google account.",
                title="Google Calendar not configured",
            )

        logger.info(f"🔄 Google access token expired for user {self.user_id}, refreshing")
        tokens = await self.oauth_client.refresh(credential.refresh_token)

        expires_at = now + timedelta(seconds=tokens.expires_in)
        await self.store.update_access_token(self.user_id, tokens.access_token, expires_at)
        return tokens.access_token
