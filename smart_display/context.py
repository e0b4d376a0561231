"""
Application container.

Everything with state (engine, HTTP client, event bus, pending OAuth flows,
Home Assistant sessions) lives on one `AppContext` stored in `app.state`.
Per-user clients are built on demand from it and never cached globally.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .db import create_engine_from_url, create_session_maker
from .event_bus import EventBus
from .integrations.google_calendar import (
    CredentialStore,
    GoogleAuthorizationFlow,
    GoogleCalendarClient,
    GoogleOAuthClient,
    OAuthFlowRegistry,
    TokenRefresher,
)
from .integrations.home_assistant import HomeAssistantConfigStore, HomeAssistantManager
from .services.layouts import LayoutService
from .services.screens import ScreenService
from .services.user_settings import UserSettingsService
from .settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine
    session_maker: async_sessionmaker[AsyncSession]
    event_bus: EventBus
    http_client: httpx.AsyncClient
    owns_http_client: bool
    oauth_client: GoogleOAuthClient
    oauth_registry: OAuthFlowRegistry
    credential_store: CredentialStore
    ha_config_store: HomeAssistantConfigStore
    ha_manager: HomeAssistantManager
    screens: ScreenService
    layouts: LayoutService
    user_settings: UserSettingsService

    def token_refresher(self, user_id: str) -> TokenRefresher:
        return TokenRefresher(self.credential_store, self.oauth_client, user_id)

    def calendar_client(self, user_id: str) -> GoogleCalendarClient:
        return GoogleCalendarClient(
            self.token_refresher(user_id),
            self.http_client,
            api_base=self.settings.google_calendar_api,
        )

    def authorization_flow(self) -> GoogleAuthorizationFlow:
        return GoogleAuthorizationFlow(
            self.oauth_client,
            self.credential_store,
            self.oauth_registry,
            redirect_uri=self.settings.google_redirect_uri,
        )

    async def aclose(self) -> None:
        await self.ha_manager.shutdown()
        if self.owns_http_client:
            await self.http_client.aclose()
        await self.engine.dispose()
        logger.info("🛑 Application context closed")


def build_context(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
    ws_connector: Optional[Callable[[str], Awaitable[Any]]] = None,
) -> AppContext:
    engine = create_engine_from_url(settings.database_url, echo=settings.debug)
    session_maker = create_session_maker(engine)
    event_bus = EventBus()

    owns_http_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=settings.http_timeout, follow_redirects=True)

    ha_config_store = HomeAssistantConfigStore(session_maker)
    return AppContext(
        settings=settings,
        engine=engine,
        session_maker=session_maker,
        event_bus=event_bus,
        http_client=http_client,
        owns_http_client=owns_http_client,
        oauth_client=GoogleOAuthClient(
            settings.google_client_id,
            settings.google_client_secret,
            http_client,
            authorize_url=settings.google_authorize_url,
            token_url=settings.google_token_url,
        ),
        oauth_registry=OAuthFlowRegistry(ttl=settings.oauth_flow_timeout),
        credential_store=CredentialStore(session_maker),
        ha_config_store=ha_config_store,
        ha_manager=HomeAssistantManager(
            ha_config_store,
            http_client,
            event_bus,
            reconnect_initial_delay=settings.ha_reconnect_initial_delay,
            reconnect_max_delay=settings.ha_reconnect_max_delay,
            reconnect_failure_threshold=settings.ha_reconnect_failure_threshold,
            connector=ws_connector,
        ),
        screens=ScreenService(session_maker, settings.public_origin),
        layouts=LayoutService(session_maker),
        user_settings=UserSettingsService(session_maker),
    )
