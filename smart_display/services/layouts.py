"""Named dashboard layouts; at most one per user is active."""
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db import session_scope, utcnow
from ..exceptions import NotFoundError, ValidationError
from ..models import DashboardLayout, User

logger = logging.getLogger(__name__)


class LayoutService:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession], clock: Callable = utcnow):
        self.session_maker = session_maker
        self.clock = clock

    async def list_layouts(self, user_id: str) -> List[DashboardLayout]:
        async with session_scope(self.session_maker) as db:
            result = await db.execute(
                select(DashboardLayout)
                .where(DashboardLayout.user_id == user_id)
                .order_by(DashboardLayout.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_active_layout(self, user_id: str) -> Optional[DashboardLayout]:
        async with session_scope(self.session_maker) as db:
            result = await db.execute(
                select(DashboardLayout).where(
                    DashboardLayout.user_id == user_id,
                    DashboardLayout.is_active.is_(True),
                )
            )
            return result.scalars().first()

    async def _lock_user(self, db: AsyncSession, user_id: str) -> None:
        """Serialise layout writes of one user on the user row (no-op on SQLite)."""
        await db.execute(select(User.id).where(User.id == user_id).with_for_update())

    async def _activate_only(self, db: AsyncSession, user_id: str, layout_id: str, now) -> None:
        await db.execute(
            update(DashboardLayout)
            .where(DashboardLayout.user_id == user_id)
            .values(
                is_active=case((DashboardLayout.id == layout_id, True), else_=False),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

    async def save_layout(self, user_id: str, layout_name: str, layout_data: Any) -> DashboardLayout:
        """Store a new layout and make it the active one."""
        if not layout_name or not layout_name.strip():
            raise ValidationError("Layout name is required", title="Invalid layout")
        if not isinstance(layout_data, (list, dict)):
            raise ValidationError("Layout data must be JSON", title="Invalid layout")

        now = self.clock()
        async with session_scope(self.session_maker) as db:
            await self._lock_user(db, user_id)
            layout = DashboardLayout(
                user_id=user_id,
                layout_name=layout_name.strip(),
                layout_data=layout_data,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            db.add(layout)
            await db.flush()
            await self._activate_only(db, user_id, layout.id, now)
            logger.info(f"💾 Saved layout '{layout.layout_name}' for user {user_id}")
            return layout

    async def activate_layout(self, user_id: str, layout_id: str) -> DashboardLayout:
        """
        Make `layout_id` the only active layout.

        One UPDATE sets every row of the user in a single statement while
        the user row is locked, so concurrent saves and activations cannot
        leave zero or two active layouts.
        """
        now = self.clock()
        async with session_scope(self.session_maker) as db:
            await self._lock_user(db, user_id)
            result = await db.execute(
                select(DashboardLayout.id).where(
                    DashboardLayout.id == layout_id,
                    DashboardLayout.user_id == user_id,
                )
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundError(f"Layout {layout_id} not found", title="Layout not found")

            await self._activate_only(db, user_id, layout_id, now)

        async with session_scope(self.session_maker) as db:
            layout = await db.get(DashboardLayout, layout_id)
            if layout is None:
                raise NotFoundError(f"Layout {layout_id} not found", title="Layout not found")
            logger.info(f"Activated layout '{layout.layout_name}' for user {user_id}")
            return layout

    async def delete_layout(self, user_id: str, layout_id: str) -> None:
        async with session_scope(self.session_maker) as db:
            result = await db.execute(
                select(DashboardLayout).where(
                    DashboardLayout.id == layout_id,
                    DashboardLayout.user_id == user_id,
                )
            )
            layout = result.scalar_one_or_none()
            if layout is None:
                raise NotFoundError(f"Layout {layout_id} not found", title="Layout not found")
            await db.delete(layout)


def layout_to_dict(layout: DashboardLayout) -> Dict[str, Any]:
    return {
        "id": layout.id,
        "layout_name": layout.layout_name,
        "layout_data": layout.layout_data,
        "is_active": layout.is_active,
        "created_at": layout.created_at.isoformat() if layout.created_at else None,
        "updated_at": layout.updated_at.isoformat() if layout.updated_at else None,
    }
