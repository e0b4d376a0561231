"""
Dependency injection for the smart display routes.

Provides Depends functions that read from the application context instead
of module globals.
"""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select

from .context import AppContext
from .db import session_scope
from .models import User
from .utils.auth import verify_token

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)


def get_context(request: Request) -> AppContext:
    """
    Dependency returning the application context.

    Usage:
        @router.get("/screens")
        async def list_screens(ctx: AppContext = Depends(get_context)):
            ...
    """
    context = getattr(request.app.state, "context", None)
    if context is None:
        logger.error("Application context not available in app.state")
        raise HTTPException(status_code=503, detail="Service is starting up")
    return context


async def load_user(ctx: AppContext, token: Optional[str]) -> Optional[User]:
    """Resolve an access token to an enabled user, or None."""
    payload = verify_token(token, ctx.settings)
    if payload is None or not payload.get("sub"):
        return None
    async with session_scope(ctx.session_maker) as db:
        result = await db.execute(select(User).where(User.id == payload["sub"]))
        user = result.scalar_one_or_none()
    if user is None or not user.enabled:
        return None
    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    ctx: AppContext = Depends(get_context),
) -> User:
    """Authenticated user from the Bearer header or the access_token cookie."""
    token = credentials.credentials if credentials else request.cookies.get("access_token")
    user = await load_user(ctx, token)
    if user is None:
        raise HTTPException(status_code=401, detail="Could not validate credentials")
    return user
