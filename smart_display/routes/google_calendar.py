"""
Google Calendar routes: OAuth lifecycle and event reads.
"""
import json
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from ..context import AppContext
from ..dependencies import get_context, get_current_user
from ..exceptions import SmartDisplayError
from ..integrations.google_calendar import OAuthResult
from ..models import User

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/google-calendar", tags=["google-calendar"])

OAUTH_MESSAGE_SOURCE = "smart-display-oauth"

CALLBACK_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Google Calendar</title></head>
<body>
<p id="message"></p>
<script>
  var payload = {payload};
  document.getElementById("message").textContent = payload.message;
  if (window.opener) {{
    window.opener.postMessage(payload, {origin});
    setTimeout(function () {{ window.close(); }}, 1500);
  }}
</script>
</body>
</html>
"""


def _script_json(value) -> str:
    # keeps "</script>" out of the inline script
    return json.dumps(value).replace("<", "\\u003c")


def render_callback_page(result: OAuthResult, origin: str) -> str:
    payload = {"source": OAUTH_MESSAGE_SOURCE, **result.to_dict()}
    return CALLBACK_PAGE.format(payload=_script_json(payload), origin=_script_json(origin))


class ExchangeRequest(BaseModel):
    code: str
    redirect_uri: str


@router.get("/auth-url")
async def auth_url(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    """Consent URL plus the state the initiator waits on."""
    return ctx.authorization_flow().start(user.id)


@router.get("/callback", response_class=HTMLResponse)
async def oauth_callback(
    state: Optional[str] = None,
    code: Optional[str] = None,
    error: Optional[str] = None,
    ctx: AppContext = Depends(get_context),
):
    """Google redirects the consent popup here."""
    try:
        result = await ctx.authorization_flow().handle_callback(state, code=code, error=error)
    except SmartDisplayError as e:
        logger.warning(f"OAuth callback rejected: {e.description}")
        result = OAuthResult(status="error", message=e.description)
        return HTMLResponse(render_callback_page(result, ctx.settings.public_origin), status_code=400)
    return HTMLResponse(render_callback_page(result, ctx.settings.public_origin))


@router.get("/oauth/{state}")
async def oauth_result(
    state: str,
    wait: float = Query(25.0, ge=0, le=60),
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Wait for the outcome of an authorization started with /auth-url."""
    result = await ctx.oauth_registry.wait(state, user.id, timeout=wait)
    return result.to_dict()


@router.post("/exchange")
async def exchange(
    body: ExchangeRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Direct code exchange for clients that handle the redirect themselves."""
    tokens = await ctx.authorization_flow().exchange(user.id, body.code, body.redirect_uri)
    return {"status": "success", "expires_in": tokens.expires_in, "scope": tokens.scope}


@router.get("/status")
async def status(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    credential = await ctx.credential_store.get(user.id)
    if credential is None:
        return {"connected": False, "expires_at": None, "scope": None}
    return {
        "connected": credential.is_connected,
        "expires_at": credential.expires_at.isoformat() if credential.expires_at else None,
        "scope": credential.scope,
    }


@router.get("/calendars")
async def calendars(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    entries = await ctx.calendar_client(user.id).list_calendars()
    return [entry.model_dump() for entry in entries]


@router.get("/events")
async def events(
    calendar_id: str = "primary",
    time_min: Optional[datetime] = None,
    time_max: Optional[datetime] = None,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    items = await ctx.calendar_client(user.id).list_events(calendar_id, time_min, time_max)
    return [item.model_dump(mode="json") for item in items]


@router.delete("")
async def disconnect(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    removed = await ctx.credential_store.delete(user.id)
    logger.info(f"Google Calendar disconnected for user {user.id}")
    return {"status": "disconnected", "removed": removed}
