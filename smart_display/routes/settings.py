"""Dashboard settings of the current user."""
from fastapi import APIRouter, Depends

from ..context import AppContext
from ..dependencies import get_context, get_current_user
from ..models import User
from ..services.user_settings import UserSettingsUpdate, settings_to_dict

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("")
async def get_settings(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    settings = await ctx.user_settings.get_or_create(user)
    return settings_to_dict(settings)


@router.patch("")
async def update_settings(
    body: UserSettingsUpdate,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    settings = await ctx.user_settings.update(user, body)
    return settings_to_dict(settings)
