from __future__ import annotations

import uuid

from sqlalchemy import Column, String, DateTime, Text, Boolean
from sqlalchemy import JSON

from .db import Base, utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


# ============= Accounts =============

class User(Base):
    __tablename__ = "users"
    id = Column(String(128), primary_key=True, default=_uuid)
    username = Column(String(64), unique=True, index=True, nullable=False)
    email = Column(String(128), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), default="user", nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_login = Column(DateTime, nullable=True)


class UserSettings(Base):
    """Per-user dashboard preferences (which widgets are shown, theme)."""
    __tablename__ = "user_settings"
    id = Column(String(128), primary_key=True, default=_uuid)
    user_id = Column(String(128), unique=True, index=True, nullable=False)
    visible_widgets = Column(JSON, nullable=False, default=list)
    theme_variant = Column(String(64), nullable=False, default="default")
    widget_order = Column(JSON, nullable=False, default=list)
    google_calendar_enabled = Column(Boolean, default=False, nullable=False)
    location_tracking_enabled = Column(Boolean, default=False, nullable=False)
    display_name = Column(String(128), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


# ============= Dashboard =============

class DashboardLayout(Base):
    """Named widget arrangement; at most one is active per user."""
    __tablename__ = "dashboard_layouts"
    id = Column(String(128), primary_key=True, default=_uuid)
    user_id = Column(String(128), index=True, nullable=False)
    layout_name = Column(String(255), nullable=False)
    layout_data = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class DashboardScreen(Base):
    __tablename__ = "dashboard_screens"
    id = Column(String(128), primary_key=True, default=_uuid)
    user_id = Column(String(128), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    layout_data = Column(JSON, nullable=False, default=list)
    # background_image, theme_variant, auto_refresh, refresh_interval
    settings = Column(JSON, nullable=True)
    is_public = Column(Boolean, default=False, nullable=False)
    # grants anonymous read access while is_public is set
    public_token = Column(String(64), unique=True, index=True, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


# ============= Integrations =============

class GoogleCalendarCredential(Base):
    """OAuth credential for Google Calendar, one row per user."""
    __tablename__ = "google_calendar_credentials"
    id = Column(String(128), primary_key=True, default=_uuid)
    user_id = Column(String(128), unique=True, index=True, nullable=False)
    access_token = Column(String(2048), nullable=False)
    refresh_token = Column(String(2048), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    scope = Column(String(512), nullable=True)
    is_connected = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class HomeAssistantConnection(Base):
    """Home Assistant instance URL and long-lived token, one row per user."""
    __tablename__ = "home_assistant_connections"
    id = Column(String(128), primary_key=True, default=_uuid)
    user_id = Column(String(128), unique=True, index=True, nullable=False)
    base_url = Column(String(1024), nullable=False)
    access_token = Column(String(2048), nullable=False)
    connection_type = Column(String(16), nullable=False, default="local")  # local | cloud
    is_connected = Column(Boolean, default=False, nullable=False)
    last_sync = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class HomeAssistantWidget(Base):
    """Dashboard tile bound to one Home Assistant entity."""
    __tablename__ = "home_assistant_widgets"
    id = Column(String(128), primary_key=True, default=_uuid)
    user_id = Column(String(128), index=True, nullable=False)
    entity_id = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=False)
    widget_type = Column(String(32), nullable=False)
    position = Column(JSON, nullable=False)
    config = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
