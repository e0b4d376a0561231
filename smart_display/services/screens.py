"""
Dashboard screens: named widget arrangements with optional public access.

A public screen is readable by anyone holding its token; the token is a
fresh 128-bit random value each time public access is switched on and is
cleared when it is switched off.
"""
import logging
import secrets
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..constants import PUBLIC_TOKEN_BYTES
from ..db import session_scope, utcnow
from ..exceptions import NotFoundError, ValidationError
from ..models import DashboardScreen

logger = logging.getLogger(__name__)


class WidgetPosition(BaseModel):
    x: int = Field(ge=0)
    y: int = Field(ge=0)
    w: int = Field(ge=1)
    h: int = Field(ge=1)


class WidgetLayoutItem(BaseModel):
    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    props: Dict[str, Any] = Field(default_factory=dict)
    position: WidgetPosition

    model_config = ConfigDict(extra="ignore")


class ScreenSettings(BaseModel):
    background_image: Optional[str] = None
    theme_variant: Optional[str] = None
    auto_refresh: Optional[bool] = None
    refresh_interval: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(extra="ignore")


def validate_layout(layout: Any) -> List[Dict[str, Any]]:
    """Check widget placements and return them as plain JSON."""
    if not isinstance(layout, list):
        raise ValidationError("Layout must be a list of widgets", title="Invalid layout")
    try:
        return [WidgetLayoutItem.model_validate(item).model_dump() for item in layout]
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid widget placement: {e.errors()[0]['msg']}", title="Invalid layout") from e


def validate_screen_settings(settings: Any) -> Dict[str, Any]:
    try:
        return ScreenSettings.model_validate(settings or {}).model_dump(exclude_none=True)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid screen settings: {e.errors()[0]['msg']}", title="Invalid screen") from e


def generate_public_token() -> str:
    return secrets.token_hex(PUBLIC_TOKEN_BYTES)


class ScreenService:
    """Screen CRUD for one application; every call is scoped to a user."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        public_origin: str,
        clock: Callable = utcnow,
    ):
        self.session_maker = session_maker
        self.public_origin = public_origin.rstrip("/")
        self.clock = clock

    async def _get_owned(self, db: AsyncSession, user_id: str, screen_id: str) -> DashboardScreen:
        result = await db.execute(
            select(DashboardScreen).where(DashboardScreen.id == screen_id, DashboardScreen.user_id == user_id)
        )
        screen = result.scalar_one_or_none()
        if screen is None:
            raise NotFoundError(f"Screen {screen_id} not found", title="Screen not found")
        return screen

    async def list_screens(self, user_id: str) -> List[DashboardScreen]:
        async with session_scope(self.session_maker) as db:
            result = await db.execute(
                select(DashboardScreen)
                .where(DashboardScreen.user_id == user_id)
                .order_by(DashboardScreen.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_screen(self, user_id: str, screen_id: str) -> DashboardScreen:
        async with session_scope(self.session_maker) as db:
            return await self._get_owned(db, user_id, screen_id)

    async def create_screen(self, user_id: str, name: str, description: Optional[str] = None) -> DashboardScreen:
        if not name or not name.strip():
            raise ValidationError("Screen name is required", title="Invalid screen")
        now = self.clock()
        async with session_scope(self.session_maker) as db:
            screen = DashboardScreen(
                user_id=user_id,
                name=name.strip(),
                description=description,
                layout_data=[],
                is_public=False,
                public_token=None,
                created_at=now,
                updated_at=now,
            )
            db.add(screen)
            await db.flush()
            logger.info(f"🖥️ Created screen '{screen.name}' for user {user_id}")
            return screen

    async def update_screen(self, user_id: str, screen_id: str, changes: Dict[str, Any]) -> DashboardScreen:
        """
        Apply a partial update. Accepted keys: name, description,
        layout_data, settings.
        """
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("Screen name cannot be empty", title="Invalid screen")
        layout = validate_layout(changes["layout_data"]) if "layout_data" in changes else None
        settings = validate_screen_settings(changes["settings"]) if "settings" in changes else None

        async with session_scope(self.session_maker) as db:
            screen = await self._get_owned(db, user_id, screen_id)
            if "name" in changes:
                screen.name = changes["name"].strip()
            if "description" in changes:
                screen.description = changes["description"]
            if layout is not None:
                screen.layout_data = layout
            if settings is not None:
                screen.settings = settings
            screen.updated_at = self.clock()
            await db.flush()
            return screen

    async def save_layout(self, user_id: str, screen_id: str, layout: Any) -> DashboardScreen:
        return await self.update_screen(user_id, screen_id, {"layout_data": layout})

    async def delete_screen(self, user_id: str, screen_id: str) -> None:
        async with session_scope(self.session_maker) as db:
            screen = await self._get_owned(db, user_id, screen_id)
            await db.delete(screen)
            logger.info(f"🗑️ Deleted screen {screen_id}")

    async def toggle_public_access(self, user_id: str, screen_id: str) -> DashboardScreen:
        async with session_scope(self.session_maker) as db:
            screen = await self._get_owned(db, user_id, screen_id)
            if screen.is_public:
                screen.is_public = False
                screen.public_token = None
            else:
                screen.is_public = True
                screen.public_token = generate_public_token()
            screen.updated_at = self.clock()
            await db.flush()
            logger.info(f"Screen {screen_id} is now {'public' if screen.is_public else 'private'}")
            return screen

    async def get_public_screen(self, token: str) -> Optional[DashboardScreen]:
        if not token:
            return None
        async with session_scope(self.session_maker) as db:
            result = await db.execute(
                select(DashboardScreen).where(
                    DashboardScreen.public_token == token,
                    DashboardScreen.is_public.is_(True),
                )
            )
            return result.scalar_one_or_none()

    def public_url(self, screen: DashboardScreen) -> Optional[str]:
        if not screen.is_public or not screen.public_token:
            return None
        return f"{self.public_origin}/screen/{screen.public_token}"

    def to_dict(self, screen: DashboardScreen) -> Dict[str, Any]:
        return {
            "id": screen.id,
            "user_id": screen.user_id,
            "name": screen.name,
            "description": screen.description,
            "layout_data": screen.layout_data if isinstance(screen.layout_data, list) else [],
            "settings": screen.settings or {},
            "is_public": screen.is_public,
            "public_token": screen.public_token,
            "public_url": self.public_url(screen),
            "created_at": screen.created_at.isoformat() if screen.created_at else None,
            "updated_at": screen.updated_at.isoformat() if screen.updated_at else None,
        }


def public_screen_view(screen: DashboardScreen) -> Dict[str, Any]:
    """What an anonymous viewer may see: no owner, no token."""
    return {
        "id": screen.id,
        "name": screen.name,
        "description": screen.description,
        "layout_data": screen.layout_data if isinstance(screen.layout_data, list) else [],
        "settings": screen.settings or {},
        "updated_at": screen.updated_at.isoformat() if screen.updated_at else None,
    }
