"""Persisted Home Assistant connection config and entity widgets."""
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...constants import HA_CONNECTION_TYPES, HA_WIDGET_TYPES
from ...db import session_scope, utcnow
from ...exceptions import NotFoundError, ValidationError
from ...models import HomeAssistantConnection, HomeAssistantWidget
from .client import normalize_base_url
from .entities import Entity

logger = logging.getLogger(__name__)

DEFAULT_WIDGET_POSITION = {"x": 0, "y": 0, "w": 2, "h": 1}
WIDGET_UPDATABLE_FIELDS = ("display_name", "widget_type", "position", "config")


def _check_widget_type(widget_type: str) -> None:
    if widget_type not in HA_WIDGET_TYPES:
        raise ValidationError(f"Unknown widget type '{widget_type}'", title="Invalid widget")


class HomeAssistantConfigStore:
    """One connection row per user, plus that user's entity widgets."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], clock: Callable = utcnow):
        self.session_maker = session_maker
        self.clock = clock

    async def _get_row(self, db: AsyncSession, user_id: str) -> Optional[HomeAssistantConnection]:
        result = await db.execute(
            select(HomeAssistantConnection).where(HomeAssistantConnection.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get(self, user_id: str) -> Optional[HomeAssistantConnection]:
        async with session_scope(self.session_maker) as db:
            return await self._get_row(db, user_id)

    async def save(
        self,
        user_id: str,
        base_url: str,
        access_token: str,
        connection_type: str = "local",
    ) -> HomeAssistantConnection:
        """Create or replace the user's connection; it is marked connected."""
        base_url = normalize_base_url(base_url)
        if connection_type not in HA_CONNECTION_TYPES:
            raise ValidationError(
                f"connection_type must be one of {', '.join(HA_CONNECTION_TYPES)}",
                title="Invalid Home Assistant config",
            )
        if not access_token:
            raise ValidationError("Access token is required", title="Invalid Home Assistant config")

        async with session_scope(self.session_maker) as db:
            connection = await self._get_row(db, user_id)
            if connection is None:
                connection = HomeAssistantConnection(user_id=user_id)
                db.add(connection)
            connection.base_url = base_url
            connection.access_token = access_token
            connection.connection_type = connection_type
            connection.is_connected = True
            connection.last_sync = self.clock()
            await db.flush()
            logger.info(f"💾 Saved Home Assistant config for user {user_id} ({base_url})")
            return connection

    async def mark_disconnected(self, user_id: str) -> None:
        async with session_scope(self.session_maker) as db:
            connection = await self._get_row(db, user_id)
            if connection is not None:
                connection.is_connected = False

    async def touch_last_sync(self, user_id: str) -> None:
        async with session_scope(self.session_maker) as db:
            connection = await self._get_row(db, user_id)
            if connection is not None:
                connection.last_sync = self.clock()
                connection.is_connected = True

    # ============= Widgets =============

    async def list_widgets(self, user_id: str) -> List[HomeAssistantWidget]:
        async with session_scope(self.session_maker) as db:
            result = await db.execute(
                select(HomeAssistantWidget)
                .where(HomeAssistantWidget.user_id == user_id)
                .order_by(HomeAssistantWidget.created_at.desc())
            )
            return list(result.scalars().all())

    async def add_widget(self, user_id: str, entity: Entity, widget_type: str) -> HomeAssistantWidget:
        _check_widget_type(widget_type)
        async with session_scope(self.session_maker) as db:
            widget = HomeAssistantWidget(
                user_id=user_id,
                entity_id=entity.entity_id,
                display_name=entity.friendly_name,
                widget_type=widget_type,
                position=dict(DEFAULT_WIDGET_POSITION),
                config={"show_icon": True, "show_state": True, "show_attributes": []},
            )
            db.add(widget)
            await db.flush()
            return widget

    async def update_widget(self, user_id: str, widget_id: str, changes: Dict[str, Any]) -> HomeAssistantWidget:
        if "widget_type" in changes:
            _check_widget_type(changes["widget_type"])
        async with session_scope(self.session_maker) as db:
            widget = await self._get_widget(db, user_id, widget_id)
            for field in WIDGET_UPDATABLE_FIELDS:
                if field in changes and changes[field] is not None:
                    setattr(widget, field, changes[field])
            widget.updated_at = self.clock()
            await db.flush()
            return widget

    async def remove_widget(self, user_id: str, widget_id: str) -> None:
        async with session_scope(self.session_maker) as db:
            widget = await self._get_widget(db, user_id, widget_id)
            await db.delete(widget)

    async def _get_widget(self, db: AsyncSession, user_id: str, widget_id: str) -> HomeAssistantWidget:
        result = await db.execute(
            select(HomeAssistantWidget).where(
                HomeAssistantWidget.id == widget_id,
                HomeAssistantWidget.user_id == user_id,
            )
        )
        widget = result.scalar_one_or_none()
        if widget is None:
            raise NotFoundError(f"Widget {widget_id} not found")
        return widget
