"""Named dashboard layouts."""
from typing import Any, Dict, List, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..context import AppContext
from ..dependencies import get_context, get_current_user
from ..models import User
from ..services.layouts import layout_to_dict

router = APIRouter(prefix="/api/layouts", tags=["layouts"])


class LayoutCreate(BaseModel):
    layout_name: str
    layout_data: Union[List[Any], Dict[str, Any]]


@router.get("")
async def list_layouts(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    layouts = await ctx.layouts.list_layouts(user.id)
    return [layout_to_dict(layout) for layout in layouts]


@router.get("/active")
async def active_layout(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    layout = await ctx.layouts.get_active_layout(user.id)
    return layout_to_dict(layout) if layout else None


@router.post("", status_code=201)
async def save_layout(
    body: LayoutCreate,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    layout = await ctx.layouts.save_layout(user.id, body.layout_name, body.layout_data)
    return layout_to_dict(layout)


@router.post("/{layout_id}/activate")
async def activate_layout(layout_id: str, user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    layout = await ctx.layouts.activate_layout(user.id, layout_id)
    return layout_to_dict(layout)


@router.delete("/{layout_id}")
async def delete_layout(layout_id: str, user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    await ctx.layouts.delete_layout(user.id, layout_id)
    return {"status": "deleted", "id": layout_id}
