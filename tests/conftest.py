import asyncio
import json
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from websockets.exceptions import ConnectionClosedError

from smart_display.db import create_engine_from_url, create_session_maker, init_models


class FakeClock:
    """Settable naive-UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self, frames=()):
        self.sent = []
        self.closed = False
        self.incoming = asyncio.Queue()
        for frame in frames:
            self.push(frame)

    def push(self, frame) -> None:
        self.incoming.put_nowait(json.dumps(frame) if isinstance(frame, dict) else frame)

    async def push_async(self, frame) -> None:
        self.push(frame)

    def drop(self) -> None:
        """Simulate the server going away."""
        self.incoming.put_nowait(ConnectionClosedError(None, None))

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def recv(self):
        item = await self.incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    def sent_types(self):
        return [m.get("type") for m in self.sent]


class FakeConnector:
    """Hands out prepared sockets (or raises prepared errors) in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.urls = []

    def add(self, outcome) -> None:
        self.outcomes.append(outcome)

    async def __call__(self, url: str):
        self.urls.append(url)
        if not self.outcomes:
            raise OSError("connection refused")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def ha_socket(*frames) -> FakeWebSocket:
    """A socket that accepts the handshake, followed by `frames`."""
    return FakeWebSocket([
        {"type": "auth_required", "ha_version": "2024.1.0"},
        {"type": "auth_ok", "ha_version": "2024.1.0"},
        *frames,
    ])


def state(entity_id: str, value: str, **attributes) -> dict:
    return {
        "entity_id": entity_id,
        "state": value,
        "attributes": attributes,
        "last_changed": "2024-01-01T00:00:00+00:00",
        "last_updated": "2024-01-01T00:00:00+00:00",
        "context": {"id": "ctx"},
    }


def state_changed(entity_id: str, new_state) -> dict:
    return {
        "id": 1,
        "type": "event",
        "event": {
            "event_type": "state_changed",
            "data": {"entity_id": entity_id, "new_state": new_state, "old_state": None},
        },
    }


async def wait_until(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 1, 12, 0, 0))


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return create_session_maker(engine)
