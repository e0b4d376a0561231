"""
Home Assistant routes: connection config, entity sync, service calls,
entity widgets and the browser live stream.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel

from ..constants import HA_WIDGET_TYPES
from ..context import AppContext
from ..dependencies import get_context, get_current_user, load_user
from ..exceptions import ConfigurationError
from ..integrations.home_assistant import HomeAssistantClient
from ..models import HomeAssistantWidget, User

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/home-assistant", tags=["home-assistant"])

STREAM_QUEUE_SIZE = 1000


class ConfigBody(BaseModel):
    base_url: str
    access_token: str
    connection_type: str = "local"


class ServiceCallBody(BaseModel):
    target: Optional[Dict[str, Any]] = None
    data: Optional[Dict[str, Any]] = None


class WidgetCreate(BaseModel):
    entity_id: str
    widget_type: str


class WidgetUpdate(BaseModel):
    display_name: Optional[str] = None
    widget_type: Optional[str] = None
    position: Optional[Dict[str, int]] = None
    config: Optional[Dict[str, Any]] = None


def widget_to_dict(widget: HomeAssistantWidget) -> Dict[str, Any]:
    return {
        "id": widget.id,
        "entity_id": widget.entity_id,
        "display_name": widget.display_name,
        "widget_type": widget.widget_type,
        "position": widget.position,
        "config": widget.config,
        "created_at": widget.created_at.isoformat() if widget.created_at else None,
        "updated_at": widget.updated_at.isoformat() if widget.updated_at else None,
    }


# ============= Config =============

@router.get("/config")
async def get_config(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    config = await ctx.ha_config_store.get(user.id)
    if config is None:
        return {"configured": False}
    return {
        "configured": True,
        "base_url": config.base_url,
        "connection_type": config.connection_type,
        "is_connected": config.is_connected,
        "last_sync": config.last_sync.isoformat() if config.last_sync else None,
    }


@router.put("/config")
async def save_config(body: ConfigBody, user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    """Store the instance URL and token after a successful connection test."""
    client = HomeAssistantClient(body.base_url, body.access_token, ctx.http_client)
    if not await client.test_connection():
        raise ConfigurationError(
            "Could not connect to Home Assistant. Check the URL and access token.",
            title="Home Assistant connection failed",
        )
    config = await ctx.ha_config_store.save(user.id, body.base_url, body.access_token, body.connection_type)
    return {"status": "saved", "base_url": config.base_url, "connection_type": config.connection_type}


# ============= Session =============

@router.post("/connect")
async def connect(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    return await ctx.ha_manager.connect(user.id)


@router.post("/disconnect")
async def disconnect(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    await ctx.ha_manager.disconnect(user.id)
    return {"status": "disconnected"}


@router.get("/status")
async def session_status(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    return ctx.ha_manager.status(user.id)


@router.post("/entities/refresh")
async def refresh_entities(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    entities = await ctx.ha_manager.refresh(user.id)
    return [entity.to_view() for entity in entities]


@router.get("/entities")
async def list_entities(
    domain: Optional[str] = None,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    return [entity.to_view() for entity in ctx.ha_manager.entities(user.id, domain)]


@router.post("/entities/{entity_id}/{service}")
async def call_entity_service(
    entity_id: str,
    service: str,
    body: Optional[Dict[str, Any]] = None,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Run `<domain>.<service>` on one entity; answers with its new state."""
    entity = await ctx.ha_manager.call_entity_service(user.id, entity_id, service, body or None)
    return entity.to_view()


@router.post("/services/{domain}/{service}")
async def call_service(
    domain: str,
    service: str,
    body: ServiceCallBody,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    result = await ctx.ha_manager.call_service(user.id, domain, service, target=body.target, data=body.data)
    return {"status": "ok", "result": result}


# ============= Widgets =============

@router.get("/widget-types")
async def widget_types():
    return list(HA_WIDGET_TYPES)


@router.get("/widgets")
async def list_widgets(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    widgets = await ctx.ha_config_store.list_widgets(user.id)
    return [widget_to_dict(w) for w in widgets]


@router.post("/widgets", status_code=201)
async def add_widget(body: WidgetCreate, user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    entity = ctx.ha_manager.entity(user.id, body.entity_id)
    widget = await ctx.ha_config_store.add_widget(user.id, entity, body.widget_type)
    return widget_to_dict(widget)


@router.patch("/widgets/{widget_id}")
async def update_widget(
    widget_id: str,
    body: WidgetUpdate,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    widget = await ctx.ha_config_store.update_widget(user.id, widget_id, body.model_dump(exclude_unset=True))
    return widget_to_dict(widget)


@router.delete("/widgets/{widget_id}")
async def remove_widget(widget_id: str, user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    await ctx.ha_config_store.remove_widget(user.id, widget_id)
    return {"status": "deleted", "id": widget_id}


# ============= Live stream =============

async def cancel_and_wait(tasks) -> None:
    """Cancel `tasks` and wait until each has finished unwinding."""
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


@router.websocket("/stream")
async def stream(websocket: WebSocket, token: Optional[str] = None):
    """
    Forward the user's `home_assistant.*` events to the browser.

    The first frame is a snapshot of the current status and entities.
    """
    ctx: AppContext = websocket.app.state.context
    user = await load_user(ctx, token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    queue: asyncio.Queue = asyncio.Queue(maxsize=STREAM_QUEUE_SIZE)

    def forward(event_name: str, data: Dict[str, Any]):
        if data.get("user_id") != user.id:
            return
        try:
            queue.put_nowait({"event": event_name, "data": data})
        except asyncio.QueueFull:
            logger.warning(f"Live stream of user {user.id} is lagging, dropping {event_name}")

    async def send_loop():
        while True:
            await websocket.send_json(await queue.get())

    async def receive_loop():
        # client frames are ignored; this only notices the disconnect
        while True:
            await websocket.receive_text()

    await ctx.event_bus.subscribe("home_assistant.*", forward)
    tasks = []
    try:
        entities = ctx.ha_manager.entities(user.id) if ctx.ha_manager.is_connected(user.id) else []
        await websocket.send_json({
            "event": "snapshot",
            "data": {
                "status": ctx.ha_manager.status(user.id),
                "entities": [e.to_view() for e in entities],
            },
        })
        tasks = [asyncio.create_task(send_loop()), asyncio.create_task(receive_loop())]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            task.result()
    except WebSocketDisconnect:
        logger.debug(f"Live stream closed by user {user.id}")
    finally:
        await cancel_and_wait(tasks)
        await ctx.event_bus.unsubscribe("home_assistant.*", forward)
