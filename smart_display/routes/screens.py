"""
Screen management routes.
Handles screen CRUD, layout saving and public sharing.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..context import AppContext
from ..dependencies import get_context, get_current_user
from ..models import User

router = APIRouter(prefix="/api/screens", tags=["screens"])


class ScreenCreate(BaseModel):
    name: str
    description: Optional[str] = None


class ScreenUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    layout_data: Optional[List[Dict[str, Any]]] = None
    settings: Optional[Dict[str, Any]] = None


class LayoutBody(BaseModel):
    layout_data: List[Dict[str, Any]]


@router.get("")
async def list_screens(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    screens = await ctx.screens.list_screens(user.id)
    return [ctx.screens.to_dict(s) for s in screens]


@router.post("", status_code=201)
async def create_screen(
    body: ScreenCreate,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    screen = await ctx.screens.create_screen(user.id, body.name, body.description)
    return ctx.screens.to_dict(screen)


@router.get("/{screen_id}")
async def get_screen(screen_id: str, user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    screen = await ctx.screens.get_screen(user.id, screen_id)
    return ctx.screens.to_dict(screen)


@router.patch("/{screen_id}")
async def update_screen(
    screen_id: str,
    body: ScreenUpdate,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    screen = await ctx.screens.update_screen(user.id, screen_id, body.model_dump(exclude_unset=True))
    return ctx.screens.to_dict(screen)


@router.put("/{screen_id}/layout")
async def save_screen_layout(
    screen_id: str,
    body: LayoutBody,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    screen = await ctx.screens.save_layout(user.id, screen_id, body.layout_data)
    return ctx.screens.to_dict(screen)


@router.post("/{screen_id}/toggle-public")
async def toggle_public(screen_id: str, user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    screen = await ctx.screens.toggle_public_access(user.id, screen_id)
    return ctx.screens.to_dict(screen)


@router.delete("/{screen_id}")
async def delete_screen(screen_id: str, user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    await ctx.screens.delete_screen(user.id, screen_id)
    return {"status": "deleted", "id": screen_id}
