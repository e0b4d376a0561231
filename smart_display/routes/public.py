"""Anonymous read access to public screens."""
from fastapi import APIRouter, Depends

from ..context import AppContext
from ..dependencies import get_context
from ..exceptions import NotFoundError
from ..services.screens import public_screen_view

router = APIRouter(tags=["public"])


async def _public_screen(token: str, ctx: AppContext):
    screen = await ctx.screens.get_public_screen(token)
    if screen is None:
        raise NotFoundError("This screen does not exist or is no longer shared", title="Screen not found")
    return public_screen_view(screen)


@router.get("/api/public/screens/{token}")
async def public_screen_api(token: str, ctx: AppContext = Depends(get_context)):
    return await _public_screen(token, ctx)


@router.get("/screen/{token}")
async def public_screen(token: str, ctx: AppContext = Depends(get_context)):
    return await _public_screen(token, ctx)
