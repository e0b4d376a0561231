"""
Google Calendar API client.

One instance per user: the access token comes from that user's
`TokenRefresher`, so nothing here is shared between users.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from ...constants import (
    CALENDAR_DEFAULT_WINDOW_DAYS,
    CALENDAR_MAX_RESULTS,
    DEFAULT_EVENT_COLOR,
    EVENT_COLOR_PALETTE,
    UNTITLED_EVENT,
)
from ...db import utcnow
from ...utils.http_client import bearer_headers, request_json
from .schemas import CalendarEvent, CalendarListEntry

logger = logging.getLogger(__name__)


def to_rfc3339(value: datetime) -> str:
    """Naive datetimes are UTC; aware ones are converted."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="seconds") + "Z"


def parse_event_time(value: Dict[str, Any]) -> Optional[datetime]:
    """
    Parse a Google `start`/`end` object.

    Timed events carry `dateTime` (RFC3339), all-day events only `date`;
    None when the object carries neither.
    """
    if value.get("dateTime"):
        raw = value["dateTime"]
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        return datetime.fromisoformat(raw)
    if value.get("date"):
        return datetime.fromisoformat(value["date"])
    return None


def event_color(color_id: Optional[str]) -> str:
    return EVENT_COLOR_PALETTE.get(color_id or "", DEFAULT_EVENT_COLOR)


def normalize_event(item: Dict[str, Any], calendar_id: str) -> CalendarEvent:
    start = item.get("start") or {}
    end = item.get("end") or {}
    return CalendarEvent(
        id=item["id"],
        title=item.get("summary") or UNTITLED_EVENT,
        start=parse_event_time(start),
        end=parse_event_time(end),
        location=item.get("location"),
        description=item.get("description"),
        all_day=not start.get("dateTime"),
        calendar_id=calendar_id,
        color=event_color(item.get("colorId")),
    )


class GoogleCalendarClient:
    """
    Read-only calendar access for one user.

    Args:
        token_provider: object with `async get_valid_access_token()`
        http_client: shared httpx client
        api_base: Calendar API root, `https://www.googleapis.com/calendar/v3`
        clock: naive-UTC "now", used for the default event window
    """

    def __init__(
        self,
        token_provider,
        http_client: httpx.AsyncClient,
        api_base: str = "https://www.googleapis.com/calendar/v3",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.token_provider = token_provider
        self.http_client = http_client
        self.api_base = api_base.rstrip("/")
        self.clock = clock

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        token = await self.token_provider.get_valid_access_token()
        return await request_json(
            self.http_client,
            "GET",
            f"{self.api_base}/{path}",
            headers=bearer_headers(token),
            params=params,
            service="Google Calendar",
        )

    async def list_calendars(self) -> List[CalendarListEntry]:
        data = await self._get("users/me/calendarList") or {}
        return [CalendarListEntry.from_api(item) for item in data.get("items", [])]

    async def list_events(
        self,
        calendar_id: str = "primary",
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
    ) -> List[CalendarEvent]:
        """
        Expanded (single) events in `[time_min, time_max]`, ordered by start.

        Defaults to the window `[now, now + 30 days]`.
        """
        now = self.clock()
        if time_min is None:
            time_min = now
        if time_max is None:
            time_max = now + timedelta(days=CALENDAR_DEFAULT_WINDOW_DAYS)

        params = {
            "timeMin": to_rfc3339(time_min),
            "timeMax": to_rfc3339(time_max),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": str(CALENDAR_MAX_RESULTS),
        }
        data = await self._get(f"calendars/{quote(calendar_id, safe='')}/events", params) or {}
        events = [normalize_event(item, calendar_id) for item in data.get("items", [])]
        logger.debug(f"📅 Fetched {len(events)} events from calendar {calendar_id}")
        return events
