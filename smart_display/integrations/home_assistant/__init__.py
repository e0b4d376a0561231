"""Home Assistant integration: REST client, live sync and per-user sessions."""
from .backoff import BackoffPolicy
from .client import HomeAssistantClient, normalize_base_url, websocket_url
from .entities import Entity, EntityStore
from .manager import HomeAssistantManager, HomeAssistantSession
from .realtime import HomeAssistantRealtime, RealtimeState
from .store import HomeAssistantConfigStore

__all__ = [
    "BackoffPolicy",
    "Entity",
    "EntityStore",
    "HomeAssistantClient",
    "HomeAssistantConfigStore",
    "HomeAssistantManager",
    "HomeAssistantRealtime",
    "HomeAssistantSession",
    "RealtimeState",
    "normalize_base_url",
    "websocket_url",
]
