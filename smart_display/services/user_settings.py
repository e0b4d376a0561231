"""Per-user dashboard preferences, created with defaults on first read."""
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..constants import DEFAULT_THEME_VARIANT, DEFAULT_VISIBLE_WIDGETS, WIDGET_TYPES
from ..db import session_scope, utcnow
from ..exceptions import ValidationError
from ..models import User, UserSettings

logger = logging.getLogger(__name__)


class UserSettingsUpdate(BaseModel):
    visible_widgets: Optional[List[str]] = None
    theme_variant: Optional[str] = None
    widget_order: Optional[List[str]] = None
    google_calendar_enabled: Optional[bool] = None
    location_tracking_enabled: Optional[bool] = None
    display_name: Optional[str] = None


class UserSettingsService:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession], clock: Callable = utcnow):
        self.session_maker = session_maker
        self.clock = clock

    async def _read(self, user_id: str) -> Optional[UserSettings]:
        async with session_scope(self.session_maker) as db:
            result = await db.execute(select(UserSettings).where(UserSettings.user_id == user_id))
            return result.scalar_one_or_none()

    async def get_or_create(self, user: User) -> UserSettings:
        settings = await self._read(user.id)
        if settings is not None:
            return settings

        try:
            async with session_scope(self.session_maker) as db:
                settings = UserSettings(
                    user_id=user.id,
                    visible_widgets=list(DEFAULT_VISIBLE_WIDGETS),
                    theme_variant=DEFAULT_THEME_VARIANT,
                    widget_order=[],
                    google_calendar_enabled=False,
                    location_tracking_enabled=False,
                    display_name=(user.email or "").split("@")[0] or user.username,
                )
                db.add(settings)
                await db.flush()
                return settings
        except IntegrityError:
            # another request created the row first
            logger.debug(f"Settings for user {user.id} created concurrently, re-reading")
            settings = await self._read(user.id)
            if settings is None:
                raise
            return settings

    async def update(self, user: User, changes: UserSettingsUpdate) -> UserSettings:
        patch = changes.model_dump(exclude_unset=True, exclude_none=True)
        for key in ("visible_widgets", "widget_order"):
            unknown = [w for w in patch.get(key, []) if w not in WIDGET_TYPES]
            if unknown:
                raise ValidationError(f"Unknown widgets: {', '.join(unknown)}", title="Invalid settings")

        await self.get_or_create(user)
        async with session_scope(self.session_maker) as db:
            result = await db.execute(select(UserSettings).where(UserSettings.user_id == user.id))
            settings = result.scalar_one()
            for key, value in patch.items():
                setattr(settings, key, value)
            settings.updated_at = self.clock()
            await db.flush()
            return settings


def settings_to_dict(settings: UserSettings) -> Dict[str, Any]:
    return {
        "visible_widgets": settings.visible_widgets or [],
        "theme_variant": settings.theme_variant,
        "widget_order": settings.widget_order or [],
        "google_calendar_enabled": settings.google_calendar_enabled,
        "location_tracking_enabled": settings.location_tracking_enabled,
        "display_name": settings.display_name,
        "updated_at": settings.updated_at.isoformat() if settings.updated_at else None,
    }
