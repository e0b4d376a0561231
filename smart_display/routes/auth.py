"""
Authentication endpoints.
Provides registration, login, token refresh and the current user profile.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from ..context import AppContext
from ..db import session_scope, utcnow
from ..dependencies import get_context, get_current_user
from ..models import User
from ..utils.auth import (
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
    verify_token,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=64)
    password: str = Field(min_length=6)
    email: str = Field(min_length=3, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str
    refresh_token: Optional[str] = None
    expires_in: int


def _access_token_for(user: User, ctx: AppContext) -> str:
    return create_access_token(
        {"sub": user.id, "username": user.username, "role": user.role},
        ctx.settings,
    )


def _set_access_cookie(response: Response, access_token: str, ctx: AppContext):
    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        secure=ctx.settings.cookie_secure,
        samesite="lax",
        max_age=ctx.settings.access_token_expire_minutes * 60,
        path="/",
    )


@router.post("/register", status_code=201)
async def register(body: RegisterRequest, ctx: AppContext = Depends(get_context)):
    """Register a new user."""
    if "@" not in body.email:
        raise HTTPException(status_code=400, detail="Invalid email address")

    password_hash = hash_password(body.password)
    try:
        async with session_scope(ctx.session_maker) as db:
            existing = await db.execute(
                select(User).where(or_(User.username == body.username, User.email == body.email))
            )
            for user in existing.scalars():
                if user.username == body.username:
                    raise HTTPException(status_code=400, detail="Username already registered")
                raise HTTPException(status_code=400, detail="Email already registered")

            user = User(
                username=body.username,
                email=body.email,
                password_hash=password_hash,
                created_at=utcnow(),
            )
            db.add(user)
            await db.flush()
            user_id = user.id
    except IntegrityError:
        raise HTTPException(status_code=400, detail="Username or email already registered")

    logger.info(f"👤 Registered user {body.username}")
    return {"status": "success", "message": "User registered successfully", "id": user_id}


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, response: Response, ctx: AppContext = Depends(get_context)):
    """Authenticate and return JWT tokens."""
    async with session_scope(ctx.session_maker) as db:
        result = await db.execute(select(User).where(User.username == body.username))
        user = result.scalar_one_or_none()

        if not user or not verify_password(body.password, user.password_hash):
            raise HTTPException(status_code=401, detail="Incorrect username or password")
        if not user.enabled:
            raise HTTPException(status_code=403, detail="Account is disabled")

        user.last_login = utcnow()
        access_token = _access_token_for(user, ctx)
        refresh_token = create_refresh_token({"sub": user.id}, ctx.settings)

    _set_access_cookie(response, access_token, ctx)
    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        refresh_token=refresh_token,
        expires_in=ctx.settings.access_token_expire_minutes * 60,
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, response: Response, ctx: AppContext = Depends(get_context)):
    """Issue a new access token from a refresh token."""
    payload = verify_token(body.refresh_token, ctx.settings, expected_type="refresh")
    if payload is None:
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token")

    async with session_scope(ctx.session_maker) as db:
        result = await db.execute(select(User).where(User.id == payload.get("sub")))
        user = result.scalar_one_or_none()
    if user is None or not user.enabled:
        raise HTTPException(status_code=401, detail="User not found")

    access_token = _access_token_for(user, ctx)
    _set_access_cookie(response, access_token, ctx)
    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=ctx.settings.access_token_expire_minutes * 60,
    )


@router.post("/logout")
async def logout(response: Response):
    """Clear the access token cookie."""
    response.delete_cookie("access_token", path="/")
    return {"status": "success", "message": "Logged out successfully"}


@router.get("/me")
async def me(current_user: User = Depends(get_current_user)):
    return {
        "id": current_user.id,
        "username": current_user.username,
        "email": current_user.email,
        "role": current_user.role,
        "created_at": current_user.created_at.isoformat() if current_user.created_at else None,
        "last_login": current_user.last_login.isoformat() if current_user.last_login else None,
    }
