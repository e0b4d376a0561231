import asyncio

import pytest

from conftest import FakeConnector, FakeWebSocket, ha_socket, state, state_changed, wait_until
from smart_display.event_bus import EventBus
from smart_display.exceptions import ApiError, AuthError, NetworkError
from smart_display.integrations.home_assistant import (
    BackoffPolicy,
    EntityStore,
    HomeAssistantRealtime,
    RealtimeState,
)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)


def make_realtime(connector, store=None, event_bus=None, threshold=10):
    sleep = RecordingSleep()
    realtime = HomeAssistantRealtime(
        "http://ha.local:8123",
        "ha-token",
        store or EntityStore(),
        event_bus=event_bus,
        user_id="user-1",
        backoff=BackoffPolicy(1.0, 60.0, threshold),
        connector=connector,
        sleep=sleep,
        handshake_timeout=1.0,
    )
    return realtime, sleep


@pytest.mark.asyncio
async def test_handshake_sends_auth_then_subscribe():
    ws = ha_socket()
    connector = FakeConnector(ws)
    realtime, _ = make_realtime(connector)

    await realtime.connect()
    try:
        assert connector.urls == ["ws://ha.local:8123/api/websocket"]
        assert ws.sent[0] == {"type": "auth", "access_token": "ha-token"}
        assert ws.sent[1] == {"id": 1, "type": "subscribe_events", "event_type": "state_changed"}
        assert realtime.state == RealtimeState.CONNECTED
    finally:
        await realtime.close()


@pytest.mark.asyncio
async def test_auth_invalid_fails_without_subscribing():
    ws = FakeWebSocket([
        {"type": "auth_required"},
        {"type": "auth_invalid", "message": "Invalid access token or password"},
    ])
    realtime, _ = make_realtime(FakeConnector(ws))

    with pytest.raises(AuthError):
        await realtime.connect()

    assert ws.sent_types() == ["auth"]
    assert ws.closed
    assert realtime.state == RealtimeState.FAILED


@pytest.mark.asyncio
async def test_unreachable_instance_is_network_error():
    realtime, _ = make_realtime(FakeConnector(OSError("connection refused")))

    with pytest.raises(NetworkError):
        await realtime.connect()
    assert realtime.state == RealtimeState.DISCONNECTED


@pytest.mark.asyncio
async def test_events_applied_in_order_with_targeted_callbacks():
    store = EntityStore()
    bus = EventBus()
    published = []
    await bus.subscribe("home_assistant.state_changed", lambda name, data: published.append(data))

    ws = ha_socket(
        state_changed("light.kitchen", state("light.kitchen", "on")),
        state_changed("sensor.temp", state("sensor.temp", "20")),
        state_changed("light.kitchen", state("light.kitchen", "off")),
    )
    realtime, _ = make_realtime(FakeConnector(ws), store=store, event_bus=bus)

    kitchen_seen = []
    all_seen = []
    realtime.subscribe_entity("light.kitchen", lambda entity_id, entity: kitchen_seen.append(entity.state))

    await realtime.connect(on_update=lambda entity_id, entity: all_seen.append(entity_id))
    try:
        await wait_until(lambda: len(all_seen) == 3)
        assert kitchen_seen == ["on", "off"]
        assert all_seen == ["light.kitchen", "sensor.temp", "light.kitchen"]
        assert store.get("light.kitchen").state == "off"
        assert store.get("sensor.temp").state == "20"
        assert [p["entity_id"] for p in published] == ["light.kitchen", "sensor.temp", "light.kitchen"]
        assert published[-1]["new_state"]["display_state"] == "Off"
        assert published[-1]["user_id"] == "user-1"
    finally:
        await realtime.close()


@pytest.mark.asyncio
async def test_removed_entity_leaves_the_store():
    store = EntityStore()
    ws = ha_socket(
        state_changed("switch.fan", state("switch.fan", "on")),
        state_changed("switch.fan", None),
    )
    realtime, _ = make_realtime(FakeConnector(ws), store=store)
    removed = []
    realtime.subscribe_entity("switch.fan", lambda entity_id, entity: removed.append(entity))

    await realtime.connect()
    try:
        await wait_until(lambda: len(removed) == 2)
        assert removed[-1] is None
        assert "switch.fan" not in store
    finally:
        await realtime.close()


@pytest.mark.asyncio
async def test_unexpected_close_reconnects_with_full_handshake():
    first, second = ha_socket(), ha_socket()
    connector = FakeConnector(first, second)
    realtime, sleep = make_realtime(connector)

    await realtime.connect()
    try:
        first.drop()
        await wait_until(lambda: len(second.sent) == 2 and realtime.state == RealtimeState.CONNECTED)

        assert sleep.delays == [1.0]
        assert second.sent_types() == ["auth", "subscribe_events"]
        assert second.sent[1]["id"] > first.sent[1]["id"]
        assert len(connector.urls) == 2

        second.push(state_changed("light.hall", state("light.hall", "on")))
        await wait_until(lambda: "light.hall" in realtime.store)
    finally:
        await realtime.close()


@pytest.mark.asyncio
async def test_circuit_opens_after_consecutive_failures():
    bus = EventBus()
    states = []
    await bus.subscribe("home_assistant.connection", lambda name, data: states.append(data["state"]))
    ws = ha_socket()
    realtime, sleep = make_realtime(FakeConnector(ws), event_bus=bus, threshold=3)

    await realtime.connect()
    ws.drop()
    await wait_until(lambda: realtime.state == RealtimeState.FAILED)

    assert sleep.delays == [1.0, 2.0, 4.0]
    assert states == ["connecting", "connected", "reconnecting", "failed"]
    await realtime.close()


@pytest.mark.asyncio
async def test_auth_rejected_on_reconnect_is_fatal():
    rejected = FakeWebSocket([{"type": "auth_invalid", "message": "revoked"}])
    first = ha_socket()
    realtime, sleep = make_realtime(FakeConnector(first, rejected))

    await realtime.connect()
    first.drop()
    await wait_until(lambda: realtime.state == RealtimeState.FAILED)

    assert sleep.delays == [1.0]
    assert rejected.sent_types() == ["auth"]
    await realtime.close()


@pytest.mark.asyncio
async def test_close_does_not_reconnect():
    ws = ha_socket()
    connector = FakeConnector(ws, ha_socket())
    realtime, sleep = make_realtime(connector)
    callback_calls = []
    realtime.subscribe_entity("light.kitchen", lambda *args: callback_calls.append(args))

    await realtime.connect()
    await realtime.close()
    ws.drop()
    for _ in range(10):
        await asyncio.sleep(0)

    assert realtime.state == RealtimeState.DISCONNECTED
    assert ws.closed
    assert sleep.delays == []
    assert len(connector.urls) == 1
    assert callback_calls == []


@pytest.mark.asyncio
async def test_call_service_waits_for_result_frame():
    ws = ha_socket()
    realtime, _ = make_realtime(FakeConnector(ws))
    await realtime.connect()
    try:
        call = asyncio.create_task(
            realtime.call_service("light", "turn_on", {"brightness": 10}, target={"entity_id": "light.kitchen"})
        )
        await wait_until(lambda: "call_service" in ws.sent_types())
        request = ws.sent[-1]
        assert request["target"] == {"entity_id": "light.kitchen"}
        assert request["service_data"] == {"brightness": 10}

        ws.push({"id": request["id"], "type": "result", "success": True, "result": {"context": {"id": "c1"}}})
        assert await call == {"context": {"id": "c1"}}

        failing = asyncio.create_task(realtime.call_service("light", "explode"))
        await wait_until(lambda: ws.sent[-1].get("service") == "explode")
        ws.push({
            "id": ws.sent[-1]["id"],
            "type": "result",
            "success": False,
            "error": {"code": "not_found", "message": "Service not found"},
        })
        with pytest.raises(ApiError) as info:
            await failing
        assert info.value.status == 0
        assert info.value.description == "Service not found"
    finally:
        await realtime.close()


@pytest.mark.asyncio
async def test_call_service_requires_open_connection():
    realtime, _ = make_realtime(FakeConnector())
    with pytest.raises(NetworkError):
        await realtime.call_service("light", "toggle")


@pytest.mark.asyncio
async def test_malformed_state_is_skipped_and_reader_survives():
    store = EntityStore()
    ws = ha_socket(
        state_changed("light.a", {"entity_id": "light.a"}),
        state_changed("light.b", state("light.b", "on")),
    )
    realtime, sleep = make_realtime(FakeConnector(ws), store=store)

    await realtime.connect()
    try:
        await wait_until(lambda: "light.b" in store)
        assert "light.a" not in store
        assert realtime.state == RealtimeState.CONNECTED
        assert not realtime._reader.done()
        assert sleep.delays == []
    finally:
        await realtime.close()


@pytest.mark.asyncio
async def test_unexpected_frame_shape_triggers_reconnect():
    first, second = ha_socket("[1, 2]"), ha_socket()
    realtime, sleep = make_realtime(FakeConnector(first, second))

    await realtime.connect()
    try:
        await wait_until(lambda: len(second.sent) == 2 and realtime.state == RealtimeState.CONNECTED)
        assert first.closed
        assert sleep.delays == [1.0]
    finally:
        await realtime.close()


@pytest.mark.asyncio
async def test_close_during_handshake_leaves_nothing_running():
    gate = asyncio.Event()
    ws = ha_socket()

    async def slow_connector(url):
        await gate.wait()
        return ws

    realtime, _ = make_realtime(slow_connector)
    connecting = asyncio.create_task(realtime.connect())
    await asyncio.sleep(0)

    await realtime.close()
    gate.set()
    await connecting

    assert realtime.state == RealtimeState.DISCONNECTED
    assert ws.closed
    assert realtime._reader is None
