"""
SQLAdmin panel. Token columns are never listed, shown or editable.
"""
from fastapi import FastAPI
from sqladmin import Admin, ModelView
from sqlalchemy.ext.asyncio import AsyncEngine

from .models import (
    DashboardLayout,
    DashboardScreen,
    GoogleCalendarCredential,
    HomeAssistantConnection,
    HomeAssistantWidget,
    User,
    UserSettings,
)


class UserAdmin(ModelView, model=User):
    column_list = [User.id, User.username, User.email, User.role, User.enabled, User.created_at, User.last_login]
    column_details_exclude_list = [User.password_hash]
    form_excluded_columns = [User.password_hash]
    column_searchable_list = [User.username, User.email]
    name_plural = "Users"


class UserSettingsAdmin(ModelView, model=UserSettings):
    column_list = [
        UserSettings.user_id,
        UserSettings.theme_variant,
        UserSettings.google_calendar_enabled,
        UserSettings.location_tracking_enabled,
        UserSettings.updated_at,
    ]
    name_plural = "User Settings"


class ScreenAdmin(ModelView, model=DashboardScreen):
    column_list = [
        DashboardScreen.id,
        DashboardScreen.user_id,
        DashboardScreen.name,
        DashboardScreen.is_public,
        DashboardScreen.updated_at,
    ]
    column_details_exclude_list = [DashboardScreen.public_token]
    form_excluded_columns = [DashboardScreen.public_token, DashboardScreen.layout_data, DashboardScreen.settings]
    name_plural = "Screens"


class LayoutAdmin(ModelView, model=DashboardLayout):
    column_list = [
        DashboardLayout.id,
        DashboardLayout.user_id,
        DashboardLayout.layout_name,
        DashboardLayout.is_active,
        DashboardLayout.updated_at,
    ]
    form_excluded_columns = [DashboardLayout.layout_data]
    name_plural = "Layouts"


class GoogleCalendarCredentialAdmin(ModelView, model=GoogleCalendarCredential):
    column_list = [
        GoogleCalendarCredential.user_id,
        GoogleCalendarCredential.is_connected,
        GoogleCalendarCredential.expires_at,
        GoogleCalendarCredential.scope,
    ]
    column_details_exclude_list = [GoogleCalendarCredential.access_token, GoogleCalendarCredential.refresh_token]
    can_create = False
    can_edit = False
    name_plural = "Google Calendar Credentials"


class HomeAssistantConnectionAdmin(ModelView, model=HomeAssistantConnection):
    column_list = [
        HomeAssistantConnection.user_id,
        HomeAssistantConnection.base_url,
        HomeAssistantConnection.connection_type,
        HomeAssistantConnection.is_connected,
        HomeAssistantConnection.last_sync,
    ]
    column_details_exclude_list = [HomeAssistantConnection.access_token]
    can_create = False
    can_edit = False
    name_plural = "Home Assistant Connections"


class HomeAssistantWidgetAdmin(ModelView, model=HomeAssistantWidget):
    column_list = [
        HomeAssistantWidget.user_id,
        HomeAssistantWidget.entity_id,
        HomeAssistantWidget.display_name,
        HomeAssistantWidget.widget_type,
    ]
    form_excluded_columns = [HomeAssistantWidget.position, HomeAssistantWidget.config]
    name_plural = "Home Assistant Widgets"


ADMIN_VIEWS = (
    UserAdmin,
    UserSettingsAdmin,
    ScreenAdmin,
    LayoutAdmin,
    GoogleCalendarCredentialAdmin,
    HomeAssistantConnectionAdmin,
    HomeAssistantWidgetAdmin,
)


def mount_admin(app: FastAPI, engine: AsyncEngine) -> Admin:
    admin = Admin(app, engine, title="Smart Display Admin")
    for view in ADMIN_VIEWS:
        admin.add_view(view)
    return admin
