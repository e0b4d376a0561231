"""
Home Assistant REST API client.
"""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import httpx

from ...constants import HA_WEBSOCKET_PATH
from ...exceptions import SmartDisplayError, ValidationError
from ...utils.http_client import bearer_headers, request_json
from .entities import Entity

logger = logging.getLogger(__name__)


def normalize_base_url(base_url: str) -> str:
    """Validate an instance URL and strip the trailing slash."""
    if not base_url or not base_url.strip():
        raise ValidationError("Home Assistant URL is required", title="Invalid Home Assistant URL")
    url = base_url.strip().rstrip("/")
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValidationError(
            f"'{base_url}' is not an absolute http(s) URL",
            title="Invalid Home Assistant URL",
        )
    return url


def websocket_url(base_url: str) -> str:
    """http -> ws, https -> wss, plus the websocket API path."""
    url = normalize_base_url(base_url)
    if url.startswith("https://"):
        url = "wss://" + url[len("https://"):]
    else:
        url = "ws://" + url[len("http://"):]
    return url + HA_WEBSOCKET_PATH


class HomeAssistantClient:
    """
    Thin wrapper over the Home Assistant REST API for one instance.

    401 and 403 are reported as AuthError, any other non-2xx as ApiError,
    transport failures as NetworkError.
    """

    def __init__(self, base_url: str, access_token: str, http_client: httpx.AsyncClient):
        self.base_url = normalize_base_url(base_url)
        self.access_token = access_token
        self.http_client = http_client

    async def _request(self, method: str, endpoint: str, json_body: Any = None) -> Any:
        return await request_json(
            self.http_client,
            method,
            f"{self.base_url}/api{endpoint}",
            headers=bearer_headers(self.access_token),
            json_body=json_body,
            service="Home Assistant",
            auth_statuses=(401, 403),
        )

    async def test_connection(self) -> bool:
        """True when `/api/` answers 2xx with our token. Never raises."""
        try:
            await self._request("GET", "/")
            return True
        except SmartDisplayError as e:
            logger.warning(f"Home Assistant connection test failed for {self.base_url}: {e.description}")
            return False

    async def get_states(self) -> List[Entity]:
        data = await self._request("GET", "/states") or []
        return [Entity.model_validate(item) for item in data]

    async def get_state(self, entity_id: str) -> Entity:
        data = await self._request("GET", f"/states/{entity_id}")
        return Entity.model_validate(data)

    async def call_service(
        self,
        domain: str,
        service: str,
        target: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Invoke a service. Home Assistant takes the target keys
        (`entity_id`, `area_id`, ...) flat in the body next to the data.
        """
        body = dict(data or {})
        body.update(target or {})
        logger.info(f"🏠 Calling {domain}.{service} on {body.get('entity_id', '-')}")
        return await self._request("POST", f"/services/{domain}/{service}", json_body=body)

    async def get_services(self) -> Any:
        return await self._request("GET", "/services")

    async def get_config(self) -> Dict[str, Any]:
        return await self._request("GET", "/config")

    # Helpers for the common widget actions

    async def toggle_light(self, entity_id: str) -> None:
        await self.call_service("light", "toggle", target={"entity_id": entity_id})

    async def set_light_brightness(self, entity_id: str, brightness: int) -> None:
        await self.call_service(
            "light", "turn_on", target={"entity_id": entity_id}, data={"brightness": brightness}
        )

    async def toggle_switch(self, entity_id: str) -> None:
        await self.call_service("switch", "toggle", target={"entity_id": entity_id})

    async def set_climate_temperature(self, entity_id: str, temperature: float) -> None:
        await self.call_service(
            "climate", "set_temperature", target={"entity_id": entity_id}, data={"temperature": temperature}
        )
