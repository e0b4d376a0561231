"""Data shapes exchanged with Google OAuth and the Calendar API."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class OAuthTokens(BaseModel):
    """Token endpoint answer (authorization_code and refresh_token grants)."""
    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    token_type: str = "Bearer"

    model_config = ConfigDict(extra="ignore")


class CalendarListEntry(BaseModel):
    id: str
    summary: str = ""
    description: Optional[str] = None
    primary: bool = False
    access_role: Optional[str] = None
    background_color: Optional[str] = None
    foreground_color: Optional[str] = None
    selected: bool = False

    @classmethod
    def from_api(cls, item: dict) -> "CalendarListEntry":
        return cls(
            id=item["id"],
            summary=item.get("summary", ""),
            description=item.get("description"),
            primary=bool(item.get("primary", False)),
            access_role=item.get("accessRole"),
            background_color=item.get("backgroundColor"),
            foreground_color=item.get("foregroundColor"),
            selected=bool(item.get("selected", False)),
        )


class CalendarEvent(BaseModel):
    """Canonical event shape handed to the calendar widgets."""
    id: str
    title: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    location: Optional[str] = None
    description: Optional[str] = None
    all_day: bool
    calendar_id: str
    color: str
