import asyncio
import json

import httpx
import pytest

from conftest import FakeConnector, ha_socket, state, state_changed, wait_until
from smart_display.exceptions import ConfigurationError, NotFoundError
from smart_display.integrations.home_assistant import HomeAssistantConfigStore, HomeAssistantManager

USER = "user-1"


class FakeHomeAssistant:
    """REST side of a Home Assistant instance."""

    def __init__(self, states):
        self.states = {s["entity_id"]: s for s in states}
        self.calls = []
        self.healthy = True
        self.states_gate = None
        self.states_requested = asyncio.Event()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/":
            if not self.healthy:
                return httpx.Response(401)
            return httpx.Response(200, json={"message": "API running."})
        if path == "/api/states":
            self.states_requested.set()
            if self.states_gate is not None:
                await self.states_gate.wait()
            return httpx.Response(200, json=list(self.states.values()))
        if path.startswith("/api/states/"):
            return httpx.Response(200, json=self.states[path[len("/api/states/"):]])
        if path.startswith("/api/services/"):
            body = json.loads(request.content)
            self.calls.append((path, body))
            if path.endswith("/toggle"):
                current = self.states[body["entity_id"]]
                flipped = "off" if current["state"] == "on" else "on"
                self.states[body["entity_id"]] = state(body["entity_id"], flipped)
            return httpx.Response(200, json=[])
        return httpx.Response(404)


@pytest.fixture
def fake_ha():
    return FakeHomeAssistant([state("light.kitchen", "on"), state("sensor.temp", "21")])


@pytest.fixture
def config_store(session_maker, clock):
    return HomeAssistantConfigStore(session_maker, clock=clock)


def make_manager(config_store, fake_ha, connector, **kwargs):
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_ha))
    return HomeAssistantManager(config_store, http, connector=connector, **kwargs)


@pytest.mark.asyncio
async def test_connect_without_config(config_store, fake_ha):
    manager = make_manager(config_store, fake_ha, FakeConnector())
    with pytest.raises(ConfigurationError):
        await manager.connect(USER)


@pytest.mark.asyncio
async def test_connect_rejected_token(config_store, fake_ha):
    fake_ha.healthy = False
    await config_store.save(USER, "http://ha.local:8123", "bad-token")
    connector = FakeConnector()
    manager = make_manager(config_store, fake_ha, connector)

    with pytest.raises(ConfigurationError):
        await manager.connect(USER)
    assert connector.urls == []
    assert not manager.is_connected(USER)
    assert (await config_store.get(USER)).is_connected is False

@pytest.mark.asyncio
async def test_connect_fetches_states_and_follows_events(config_store, fake_ha):
    await config_store.save(USER, "http://ha.local:8123/", "ha-token")
    ws = ha_socket()
    manager = make_manager(config_store, fake_ha, FakeConnector(ws))

    status = await manager.connect(USER)
    try:
        assert status["connected"] is True
        assert status["entity_count"] == 2
        assert [e.entity_id for e in manager.entities(USER, "light")] == ["light.kitchen"]

        ws.push(state_changed("sensor.temp", state("sensor.temp", "22")))
        await wait_until(lambda: manager.entity(USER, "sensor.temp").state == "22")
        assert manager.entity(USER, "light.kitchen").state == "on"
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_disconnect_clears_entities(config_store, fake_ha):
    await config_store.save(USER, "http://ha.local:8123", "ha-token")
    manager = make_manager(config_store, fake_ha, FakeConnector(ha_socket()))
    await manager.connect(USER)

    await manager.disconnect(USER)

    assert manager.status(USER) == {"connected": False, "state": "disconnected", "entity_count": 0, "last_sync": None}
    with pytest.raises(ConfigurationError):
        manager.entities(USER)
    assert (await config_store.get(USER)).is_connected is False


@pytest.mark.asyncio
async def test_fetch_finishing_after_disconnect_is_discarded(config_store, fake_ha):
    await config_store.save(USER, "http://ha.local:8123", "ha-token")
    fake_ha.states_gate = asyncio.Event()
    connector = FakeConnector(ha_socket())
    manager = make_manager(config_store, fake_ha, connector)

    connecting = asyncio.create_task(manager.connect(USER))
    await fake_ha.states_requested.wait()
    await manager.disconnect(USER)
    fake_ha.states_gate.set()
    status = await connecting

    assert status["connected"] is False
    assert status["entity_count"] == 0
    assert not manager.is_connected(USER)
    assert connector.urls == []


@pytest.mark.asyncio
async def test_entity_service_rereads_state(config_store, fake_ha):
    await config_store.save(USER, "http://ha.local:8123", "ha-token")
    manager = make_manager(config_store, fake_ha, FakeConnector(ha_socket()))
    await manager.connect(USER)
    try:
        entity = await manager.call_entity_service(USER, "light.kitchen", "toggle")

        assert entity.state == "off"
        assert manager.entity(USER, "light.kitchen").state == "off"
        assert fake_ha.calls == [("/api/services/light/toggle", {"entity_id": "light.kitchen"})]
        with pytest.raises(NotFoundError):
            manager.entity(USER, "light.garage")
    finally:
        await manager.shutdown()


class GatedConnector(FakeConnector):
    """Holds the first connection attempt until `gate` is set."""

    def __init__(self, *outcomes):
        super().__init__(*outcomes)
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()

    async def __call__(self, url):
        first = not self.urls
        if first:
            self.entered.set()
        socket = await super().__call__(url)
        if first:
            await self.gate.wait()
        return socket


async def poll_until(predicate, attempts=200):
    for _ in range(attempts):
        if await predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
async def test_disconnect_during_live_handshake_drops_the_socket(config_store, fake_ha):
    await config_store.save(USER, "http://ha.local:8123", "ha-token")
    ws = ha_socket()
    connector = GatedConnector(ws)
    manager = make_manager(config_store, fake_ha, connector)

    connecting = asyncio.create_task(manager.connect(USER))
    await connector.entered.wait()
    await manager.disconnect(USER)
    connector.gate.set()
    status = await connecting

    assert status["connected"] is False
    assert not manager.is_connected(USER)
    assert ws.closed
    assert (await config_store.get(USER)).is_connected is False

    ws.push(state_changed("light.kitchen", state("light.kitchen", "off")))
    for _ in range(10):
        await asyncio.sleep(0)
    # nobody reads the orphaned socket any more
    assert ws.incoming.qsize() == 1


@pytest.mark.asyncio
async def test_second_connect_supersedes_the_first(config_store, fake_ha):
    await config_store.save(USER, "http://ha.local:8123", "ha-token")
    first, second = ha_socket(), ha_socket()
    connector = GatedConnector(first, second)
    manager = make_manager(config_store, fake_ha, connector)

    earlier = asyncio.create_task(manager.connect(USER))
    await connector.entered.wait()
    later = await manager.connect(USER)
    connector.gate.set()
    await earlier
    try:
        assert later["connected"] is True
        assert first.closed
        assert not second.closed
        assert manager.status(USER)["connected"] is True

        second.push(state_changed("sensor.temp", state("sensor.temp", "25")))
        await wait_until(lambda: manager.entity(USER, "sensor.temp").state == "25")
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_live_sync_giving_up_marks_config_disconnected(config_store, fake_ha):
    await config_store.save(USER, "http://ha.local:8123", "ha-token")
    ws = ha_socket()
    manager = make_manager(
        config_store,
        fake_ha,
        FakeConnector(ws),
        reconnect_initial_delay=0.001,
        reconnect_max_delay=0.001,
        reconnect_failure_threshold=1,
    )
    await manager.connect(USER)
    try:
        assert (await config_store.get(USER)).is_connected is True
        ws.drop()

        async def marked_disconnected():
            return (await config_store.get(USER)).is_connected is False

        await poll_until(marked_disconnected)
        assert manager.status(USER)["state"] == "failed"
    finally:
        await manager.shutdown()
