"""
Home Assistant WebSocket live sync.

Lifecycle:
    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTED -> RECONNECTING -> CONNECTED | FAILED   (unexpected close)
    any -> DISCONNECTED                               (close())

One reader task per connection applies `state_changed` frames in arrival
order. After an unexpected close the same task waits the backoff delay and
repeats the full auth + subscribe handshake; consecutive failures past the
threshold open the circuit (FAILED) until `connect()` is called again.
"""
import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets
from pydantic import ValidationError as PydanticValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from ...constants import EVENT_HA_CONNECTION, EVENT_HA_STATE_CHANGED
from ...exceptions import ApiError, AuthError, NetworkError
from .backoff import BackoffPolicy
from .client import websocket_url
from .entities import Entity, EntityStore

logger = logging.getLogger(__name__)

# callback(entity_id, entity); entity is None when the entity was removed
EntityCallback = Callable[[str, Optional[Entity]], Any]


class RealtimeState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class HomeAssistantRealtime:
    """
    Live entity updates for one Home Assistant instance.

    Args:
        base_url: instance URL (http or https)
        access_token: long-lived access token
        store: entity store patched by incoming events
        event_bus: optional bus receiving `home_assistant.*` events
        user_id: owner, attached to published events
        backoff: reconnect delay policy
        connector: `async (url) -> websocket`, defaults to `websockets.connect`
        sleep: awaitable sleep used between reconnect attempts
        handshake_timeout: seconds to wait for each handshake frame
        on_state: optional `async (state) -> None` called on every state change
    """

    def __init__(
        self,
        base_url: str,
        access_token: str,
        store: EntityStore,
        *,
        event_bus=None,
        user_id: Optional[str] = None,
        backoff: Optional[BackoffPolicy] = None,
        connector: Optional[Callable[[str], Awaitable[Any]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        handshake_timeout: float = 10.0,
        on_state: Optional[Callable[[RealtimeState], Awaitable[None]]] = None,
    ):
        self.url = websocket_url(base_url)
        self.access_token = access_token
        self.store = store
        self.event_bus = event_bus
        self.user_id = user_id
        self.backoff = backoff or BackoffPolicy()
        self.connector = connector or websockets.connect
        self.sleep = sleep
        self.handshake_timeout = handshake_timeout
        self.on_state = on_state

        self.state = RealtimeState.DISCONNECTED
        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._closing = False
        self._message_id = 0
        self._pending: Dict[int, asyncio.Future] = {}
        self._entity_callbacks: Dict[str, List[EntityCallback]] = {}
        self._on_update: Optional[EntityCallback] = None

    # ============= Public API =============

    async def connect(self, on_update: Optional[EntityCallback] = None) -> None:
        """
        Open the socket, authenticate and subscribe to `state_changed`.

        Raises AuthError on `auth_invalid` (nothing is subscribed) and
        NetworkError when the instance cannot be reached.
        """
        await self._stop_reader()
        await self._close_socket()
        self._closing = False
        self._on_update = on_update
        self.backoff.reset()

        await self._set_state(RealtimeState.CONNECTING)
        try:
            ws = await self._open()
        except AuthError:
            await self._set_state(RealtimeState.FAILED)
            raise
        except Exception:
            await self._set_state(RealtimeState.DISCONNECTED)
            raise

        if self._closing:
            # close() ran while the handshake was in flight
            await self._close_socket(ws)
            await self._set_state(RealtimeState.DISCONNECTED)
            return

        self._ws = ws
        await self._set_state(RealtimeState.CONNECTED)
        self._reader = asyncio.create_task(self._run())

    async def close(self) -> None:
        """Intentional close: no reconnect, callbacks dropped."""
        self._closing = True
        self._entity_callbacks.clear()
        self._on_update = None
        await self._stop_reader()
        await self._close_socket()
        self._fail_pending(NetworkError("Home Assistant live connection closed"))
        await self._set_state(RealtimeState.DISCONNECTED)

    def subscribe_entity(self, entity_id: str, callback: EntityCallback) -> None:
        self._entity_callbacks.setdefault(entity_id, []).append(callback)

    def unsubscribe_entity(self, entity_id: str, callback: Optional[EntityCallback] = None) -> None:
        """Drop one callback, or every callback of the entity when none is given."""
        if callback is None:
            self._entity_callbacks.pop(entity_id, None)
            return
        callbacks = self._entity_callbacks.get(entity_id, [])
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            self._entity_callbacks.pop(entity_id, None)

    async def call_service(
        self,
        domain: str,
        service: str,
        service_data: Optional[Dict[str, Any]] = None,
        target: Optional[Dict[str, Any]] = None,
        timeout: float = 10.0,
    ) -> Any:
        """Call a service over the open socket and wait for its result frame."""
        if self._ws is None or self.state != RealtimeState.CONNECTED:
            raise NetworkError("Home Assistant live connection is not open")

        msg_id = self._next_id()
        future = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = future
        message: Dict[str, Any] = {
            "id": msg_id,
            "type": "call_service",
            "domain": domain,
            "service": service,
            "service_data": service_data or {},
        }
        if target:
            message["target"] = target
        try:
            await self._send(self._ws, message)
            result = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise NetworkError(f"No answer to {domain}.{service} within {timeout}s") from e
        finally:
            self._pending.pop(msg_id, None)

        if not result.get("success", False):
            error = result.get("error") or {}
            raise ApiError(
                0,
                json.dumps(error),
                description=error.get("message") or f"{domain}.{service} failed",
                title="Home Assistant service call failed",
            )
        return result.get("result")

    @property
    def is_connected(self) -> bool:
        return self.state == RealtimeState.CONNECTED

    # ============= Handshake =============

    def _next_id(self) -> int:
        self._message_id += 1
        return self._message_id

    async def _send(self, ws, message: Dict[str, Any]) -> None:
        await ws.send(json.dumps(message))

    async def _recv_json(self, ws) -> Dict[str, Any]:
        try:
            raw = await asyncio.wait_for(ws.recv(), timeout=self.handshake_timeout)
        except asyncio.TimeoutError as e:
            raise NetworkError("Home Assistant did not answer the websocket handshake in time") from e
        return json.loads(raw)

    async def _open(self):
        """Connect, authenticate and subscribe. Returns the ready socket."""
        try:
            ws = await self.connector(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise NetworkError(f"Could not open Home Assistant websocket: {e}", title="Home Assistant unreachable") from e

        try:
            await self._handshake(ws)
        except (ConnectionClosed, json.JSONDecodeError) as e:
            await self._close_socket(ws)
            raise NetworkError(f"Home Assistant websocket handshake failed: {e}") from e
        except Exception:
            await self._close_socket(ws)
            raise
        return ws

    async def _handshake(self, ws) -> None:
        await self._send(ws, {"type": "auth", "access_token": self.access_token})
        while True:
            message = await self._recv_json(ws)
            kind = message.get("type")
            if kind == "auth_required":
                continue
            if kind == "auth_invalid":
                logger.error(f"❌ Home Assistant rejected the access token for {self.url}")
                raise AuthError(
                    message.get("message") or "Invalid Home Assistant access token",
                    title="Home Assistant authorization failed",
                )
            if kind == "auth_ok":
                break
            raise ApiError(0, json.dumps(message), description=f"Unexpected handshake frame: {kind}")

        await self._send(ws, {
            "id": self._next_id(),
            "type": "subscribe_events",
            "event_type": "state_changed",
        })
        logger.info(f"✅ Home Assistant live sync connected ({self.url})")

    # ============= Reader =============

    async def _run(self) -> None:
        while True:
            try:
                await self._read_frames(self._ws)
            except ConnectionClosed as e:
                if self._closing:
                    return
                logger.warning(f"⚠️ Home Assistant websocket closed unexpectedly: {e}")
            except Exception as e:
                if self._closing:
                    return
                logger.error(f"❌ Home Assistant reader failed, reconnecting: {e}", exc_info=True)
                await self._close_socket()
            self._ws = None
            self._fail_pending(NetworkError("Home Assistant connection lost"))
            if self._closing or not await self._reconnect():
                return

    async def _read_frames(self, ws) -> None:
        while True:
            raw = await ws.recv()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring non-JSON frame from Home Assistant: {str(raw)[:200]}")
                continue
            await self._handle_message(message)

    async def _handle_message(self, message: Dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "event":
            event = message.get("event") or {}
            if event.get("event_type") == "state_changed":
                await self._apply_state_change(event.get("data") or {})
        elif kind == "result":
            future = self._pending.get(message.get("id"))
            if future is not None and not future.done():
                future.set_result(message)

    async def _apply_state_change(self, data: Dict[str, Any]) -> None:
        entity_id = data.get("entity_id")
        if not entity_id:
            return
        new_state = data.get("new_state")
        if new_state is None:
            entity = None
            self.store.remove(entity_id)
        else:
            try:
                entity = Entity.model_validate(new_state)
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed state for {entity_id}: {e.errors()[0]['msg']}")
                return
            self.store.patch(entity)

        for callback in list(self._entity_callbacks.get(entity_id, [])):
            await self._invoke(callback, entity_id, entity)
        if self._on_update is not None:
            await self._invoke(self._on_update, entity_id, entity)

        if self.event_bus is not None:
            await self.event_bus.emit(EVENT_HA_STATE_CHANGED, {
                "user_id": self.user_id,
                "entity_id": entity_id,
                "new_state": entity.to_view() if entity else None,
            })

    async def _invoke(self, callback: EntityCallback, entity_id: str, entity: Optional[Entity]) -> None:
        try:
            result = callback(entity_id, entity)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(f"❌ Entity callback for {entity_id} failed: {e}", exc_info=True)

    # ============= Reconnect =============

    async def _reconnect(self) -> bool:
        """Retry the handshake with backoff. False when the circuit opened."""
        await self._set_state(RealtimeState.RECONNECTING)
        while not self._closing:
            delay = self.backoff.next_delay()
            logger.info(f"🔄 Reconnecting to Home Assistant in {delay:.1f}s")
            await self.sleep(delay)
            if self._closing:
                return False
            try:
                ws = await self._open()
            except AuthError:
                await self._set_state(RealtimeState.FAILED)
                return False
            except (NetworkError, ApiError) as e:
                self.backoff.record_failure()
                logger.warning(
                    f"Reconnect attempt {self.backoff.failures}/{self.backoff.failure_threshold} failed: {e.description}"
                )
                if self.backoff.circuit_open:
                    logger.error("❌ Home Assistant unreachable, giving up until the next connect()")
                    await self._set_state(RealtimeState.FAILED)
                    return False
                continue

            self.backoff.reset()
            self._ws = ws
            await self._set_state(RealtimeState.CONNECTED)
            return True
        return False

    # ============= Helpers =============

    async def _set_state(self, state: RealtimeState) -> None:
        if state == self.state:
            return
        self.state = state
        if self.event_bus is not None:
            await self.event_bus.emit(EVENT_HA_CONNECTION, {"user_id": self.user_id, "state": state.value})
        if self.on_state is not None:
            await self.on_state(state)

    async def _stop_reader(self) -> None:
        task, self._reader = self._reader, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _close_socket(self, ws=None) -> None:
        if ws is None:
            ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except (OSError, WebSocketException) as e:
            logger.debug(f"Error while closing Home Assistant websocket: {e}")

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
