"""
In-process event bus.
Publishes events to subscribers with wildcard pattern support.
"""

from typing import Dict, List, Callable, Any, Optional
from datetime import datetime
from collections import deque
import asyncio
import logging
import re

from .constants import EVENT_BUS_MAX_LOG_SIZE

logger = logging.getLogger(__name__)


class EventLogEntry:
    """Entry of the event log."""
    def __init__(self, event_name: str, data: Dict[str, Any], timestamp: Optional[datetime] = None):
        self.event_name = event_name
        self.data = data
        self.timestamp = timestamp or datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_name": self.event_name,
            "data": self.data,
            "timestamp": self.timestamp.isoformat()
        }


class EventBus:
    """
    Simple in-process event bus.

    Subscriptions use wildcard patterns:
    - "home_assistant.*" - every event starting with "home_assistant."
    - "*" - every event
    - "home_assistant.state_changed" - exact match

    Example:

    ```python
    async def on_entity_changed(event_name, data):
        print(f"Entity changed: {data['entity_id']}")

    await event_bus.subscribe("home_assistant.*", on_entity_changed)

    await event_bus.emit("home_assistant.state_changed", {
        "user_id": "u1",
        "entity_id": "light.kitchen",
        "new_state": {...},
    })
    ```
    """

    def __init__(self, max_log_size: int = EVENT_BUS_MAX_LOG_SIZE):
        self.subscribers: Dict[str, List[Callable]] = {}
        self.event_log: deque = deque(maxlen=max_log_size)
        self.stats: Dict[str, Any] = {
            "total_events": 0,
            "events_by_type": {}
        }

    async def emit(self, event_name: str, data: Dict[str, Any]):
        """
        Publish an event to every matching subscriber.

        Handler failures are logged and do not stop delivery to the others.
        """
        logger.debug(f"📢 EVENT EMIT: {event_name}")

        self.event_log.append(EventLogEntry(event_name, data))
        self.stats["total_events"] += 1
        self.stats["events_by_type"][event_name] = self.stats["events_by_type"].get(event_name, 0) + 1

        for pattern, handlers in list(self.subscribers.items()):
            if not self._match_pattern(event_name, pattern):
                continue
            for handler in list(handlers):
                try:
                    result = handler(event_name, data)
                    if asyncio.iscoroutine(result):
                        await result
                except Exception as e:
                    logger.error(
                        f"❌ Error in event handler for '{event_name}' (pattern '{pattern}'): {e}",
                        exc_info=True
                    )

    def get_logs(self, limit: int = 100, event_filter: Optional[str] = None) -> List[Dict[str, Any]]:
        """Recent event log entries, optionally filtered by a pattern."""
        logs = list(self.event_log)
        if event_filter:
            logs = [entry for entry in logs if self._match_pattern(entry.event_name, event_filter)]
        return [entry.to_dict() for entry in logs[-limit:]]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_events": self.stats["total_events"],
            "events_by_type": self.stats["events_by_type"].copy(),
            "log_size": len(self.event_log),
            "subscribers_count": sum(len(handlers) for handlers in self.subscribers.values()),
            "subscribers_patterns": list(self.subscribers.keys())
        }

    def clear_log(self):
        self.event_log.clear()
        self.stats["total_events"] = 0
        self.stats["events_by_type"] = {}

    async def subscribe(self, event_pattern: str, handler: Callable):
        """
        Subscribe a sync or async handler(event_name, data) to a pattern.
        """
        self.subscribers.setdefault(event_pattern, []).append(handler)
        logger.debug(f"✅ Subscribed to pattern '{event_pattern}'")

    async def unsubscribe(self, event_pattern: str, handler: Callable):
        handlers = self.subscribers.get(event_pattern)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            del self.subscribers[event_pattern]

    def _match_pattern(self, event_name: str, pattern: str) -> bool:
        if pattern == "*":
            return True
        if "*" not in pattern:
            return event_name == pattern
        regex_pattern = "^" + re.escape(pattern).replace(r"\*", ".*") + "$"
        return bool(re.match(regex_pattern, event_name))
