"""
Authentication utilities for the smart display service.
Provides password hashing, JWT token creation and validation functions.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import jwt
from jwt import exceptions as jwt_exceptions
from passlib.context import CryptContext

from ..settings import Settings

logger = logging.getLogger(__name__)

# bcrypt_sha256 avoids the 72-byte input limit of plain bcrypt
pwd_context = CryptContext(schemes=["bcrypt_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against its hash."""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


def _encode(data: dict, token_type: str, expires_delta: timedelta, settings: Settings) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire, "type": token_type})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(data: dict, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    return _encode(data, "access", delta, settings)


def create_refresh_token(data: dict, settings: Settings) -> str:
    """Create JWT refresh token."""
    return _encode(data, "refresh", timedelta(days=settings.refresh_token_expire_days), settings)


def verify_token(token: Optional[str], settings: Settings, expected_type: str = "access") -> Optional[Dict[str, Any]]:
    """Verify JWT token and return payload."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt_exceptions.ExpiredSignatureError:
        logger.warning("Token has expired")
        return None
    except jwt_exceptions.PyJWTError as e:
        logger.error(f"Token verification error: {e}")
        return None

    if payload.get("type") != expected_type:
        logger.warning(f"Unexpected token type: {payload.get('type')}")
        return None
    return payload
