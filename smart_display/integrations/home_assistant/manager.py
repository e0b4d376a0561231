"""
Per-user Home Assistant sessions.

Each connected user gets a `HomeAssistantSession`: REST client, entity store
and live sync. Every session carries an epoch that is bumped on disconnect;
a fetch that started under an older epoch is dropped when it completes, so
results never land in a store that was cleared meanwhile.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError

from ...db import utcnow
from ...exceptions import ConfigurationError, NotFoundError, ValidationError
from .backoff import BackoffPolicy
from .client import HomeAssistantClient
from .entities import Entity, EntityStore
from .realtime import HomeAssistantRealtime, RealtimeState
from .store import HomeAssistantConfigStore

logger = logging.getLogger(__name__)


@dataclass
class HomeAssistantSession:
    user_id: str
    client: HomeAssistantClient
    store: EntityStore = field(default_factory=EntityStore)
    realtime: Optional[HomeAssistantRealtime] = None
    epoch: int = 0
    last_sync: Optional[datetime] = None


class HomeAssistantManager:
    """Owns the live Home Assistant sessions of every user."""

    def __init__(
        self,
        config_store: HomeAssistantConfigStore,
        http_client: httpx.AsyncClient,
        event_bus=None,
        *,
        reconnect_initial_delay: float = 1.0,
        reconnect_max_delay: float = 60.0,
        reconnect_failure_threshold: int = 10,
        connector: Optional[Callable[[str], Awaitable[Any]]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config_store = config_store
        self.http_client = http_client
        self.event_bus = event_bus
        self.reconnect_initial_delay = reconnect_initial_delay
        self.reconnect_max_delay = reconnect_max_delay
        self.reconnect_failure_threshold = reconnect_failure_threshold
        self.connector = connector
        self.clock = clock
        self._sessions: Dict[str, HomeAssistantSession] = {}
        self._epochs: Dict[str, int] = {}

    # ============= Lifecycle =============

    async def connect(self, user_id: str) -> Dict[str, Any]:
        """Load config, verify it, fetch all states and start live sync."""
        config = await self.config_store.get(user_id)
        if config is None:
            raise ConfigurationError(
                "Save your Home Assistant URL and access token first",
                title="Home Assistant not configured",
            )

        await self.disconnect(user_id, mark=False)

        client = HomeAssistantClient(config.base_url, config.access_token, self.http_client)
        if not await client.test_connection():
            await self.config_store.mark_disconnected(user_id)
            raise ConfigurationError(
                "Could not connect to Home Assistant. Check the URL and access token.",
                title="Home Assistant connection failed",
            )

        session = HomeAssistantSession(user_id=user_id, client=client, epoch=self._epochs.get(user_id, 0))
        self._sessions[user_id] = session
        epoch = session.epoch

        session.realtime = HomeAssistantRealtime(
            config.base_url,
            config.access_token,
            session.store,
            event_bus=self.event_bus,
            user_id=user_id,
            backoff=BackoffPolicy(
                self.reconnect_initial_delay,
                self.reconnect_max_delay,
                self.reconnect_failure_threshold,
            ),
            connector=self.connector,
            on_state=lambda state: self._realtime_state_changed(session, epoch, state),
        )
        try:
            if not await self._fetch_all(session):
                return self.status(user_id)
            await session.realtime.connect()
        except Exception:
            if self._is_current(session, epoch):
                await self.disconnect(user_id)
            raise

        if not self._is_current(session, epoch):
            # disconnected or superseded while the handshake was running
            logger.info(f"Dropping superseded Home Assistant live connection for user {user_id}")
            await session.realtime.close()
            return self.status(user_id)

        await self.config_store.touch_last_sync(user_id)
        logger.info(f"🏠 Home Assistant session started for user {user_id} ({len(session.store)} entities)")
        return self.status(user_id)

    async def _realtime_state_changed(self, session: HomeAssistantSession, epoch: int, state: RealtimeState) -> None:
        if state != RealtimeState.FAILED or not self._is_current(session, epoch):
            return
        logger.warning(f"Home Assistant live sync failed for user {session.user_id}, marking disconnected")
        try:
            await self.config_store.mark_disconnected(session.user_id)
        except SQLAlchemyError as e:
            logger.error(f"Could not mark Home Assistant disconnected for user {session.user_id}: {e}")

    async def disconnect(self, user_id: str, mark: bool = True) -> None:
        """Stop live sync and forget the entities. In-flight fetches are discarded."""
        self._epochs[user_id] = self._epochs.get(user_id, 0) + 1
        session = self._sessions.pop(user_id, None)
        if session is not None:
            session.epoch = -1
            if session.realtime is not None:
                await session.realtime.close()
            session.store.clear()
            logger.info(f"🔌 Home Assistant session closed for user {user_id}")
        if mark:
            await self.config_store.mark_disconnected(user_id)

    async def shutdown(self) -> None:
        for user_id in list(self._sessions):
            await self.disconnect(user_id, mark=False)

    # ============= Entities =============

    def _session(self, user_id: str) -> HomeAssistantSession:
        session = self._sessions.get(user_id)
        if session is None:
            raise ConfigurationError("Connect Home Assistant first", title="Home Assistant not connected")
        return session

    def _is_current(self, session: HomeAssistantSession, epoch: int) -> bool:
        return self._sessions.get(session.user_id) is session and session.epoch == epoch

    async def _fetch_all(self, session: HomeAssistantSession) -> bool:
        epoch = session.epoch
        entities = await session.client.get_states()
        if not self._is_current(session, epoch):
            logger.info(f"Discarding stale Home Assistant fetch for user {session.user_id}")
            return False
        session.store.replace_all(entities)
        session.last_sync = self.clock()
        return True

    async def refresh(self, user_id: str) -> List[Entity]:
        session = self._session(user_id)
        if await self._fetch_all(session):
            await self.config_store.touch_last_sync(user_id)
        return session.store.all()

    def entities(self, user_id: str, domain: Optional[str] = None) -> List[Entity]:
        return self._session(user_id).store.all(domain)

    def entity(self, user_id: str, entity_id: str) -> Entity:
        entity = self._session(user_id).store.get(entity_id)
        if entity is None:
            raise NotFoundError(f"Entity {entity_id} not found", title="Unknown entity")
        return entity

    def is_connected(self, user_id: str) -> bool:
        return user_id in self._sessions

    async def call_entity_service(
        self,
        user_id: str,
        entity_id: str,
        service: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Entity:
        """
        Call `<domain>.<service>` on one entity and re-read its state.

        The store is only updated with what Home Assistant reports back.
        """
        if "." not in entity_id:
            raise ValidationError(f"'{entity_id}' is not an entity id")
        session = self._session(user_id)
        epoch = session.epoch
        domain = entity_id.split(".", 1)[0]
        await session.client.call_service(domain, service, target={"entity_id": entity_id}, data=data)
        entity = await session.client.get_state(entity_id)
        if self._is_current(session, epoch):
            session.store.patch(entity)
        return entity

    async def call_service(
        self,
        user_id: str,
        domain: str,
        service: str,
        target: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        return await self._session(user_id).client.call_service(domain, service, target=target, data=data)

    def status(self, user_id: str) -> Dict[str, Any]:
        session = self._sessions.get(user_id)
        if session is None:
            return {"connected": False, "state": RealtimeState.DISCONNECTED.value, "entity_count": 0, "last_sync": None}
        state = session.realtime.state if session.realtime else RealtimeState.DISCONNECTED
        return {
            "connected": state == RealtimeState.CONNECTED,
            "state": state.value,
            "entity_count": len(session.store),
            "last_sync": session.last_sync.isoformat() if session.last_sync else None,
        }
