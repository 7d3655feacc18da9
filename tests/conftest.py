"""Shared fixtures for driving the relay without a live transport."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from arena_relay import RelayConfig, World
from arena_relay.broadcast import deliver


class FakeConnection:
    """Records every frame delivered to it."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.open = True
        self.sent: List[Dict[str, Any]] = []

    def __repr__(self) -> str:
        return f"<FakeConnection {self.name}>"

    def is_open(self) -> bool:
        return self.open

    def send(self, text: str) -> None:
        self.sent.append(json.loads(text))

    def of_type(self, msg_type: str) -> List[Dict[str, Any]]:
        return [message for message in self.sent if message["type"] == msg_type]

    def types(self) -> List[str]:
        return [message["type"] for message in self.sent]

    def clear(self) -> None:
        self.sent.clear()


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class Harness:
    """Feeds frames into a :class:`World` and delivers the results."""

    def __init__(self, world: World) -> None:
        self.world = world

    def send(self, connection: FakeConnection, message: Any) -> None:
        frame = message if isinstance(message, str) else json.dumps(message)
        deliver(self.world.dispatch(connection, frame))

    def close(self, connection: FakeConnection, reason: str | None = None) -> None:
        connection.open = False
        deliver(self.world.disconnect(connection, reason))

    def join(self, connection: FakeConnection, map_id: str, **fields: Any) -> str:
        self.send(connection, {"type": "join_map", "map_id": map_id, **fields})
        acks = connection.of_type("map_joined_ack")
        assert acks, f"{connection!r} was not admitted to {map_id}"
        return acks[-1]["yourId"]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def world(clock: FakeClock) -> World:
    return World(RelayConfig(), clock=clock)


@pytest.fixture()
def harness(world: World) -> Harness:
    return Harness(world)


@pytest.fixture()
def make_connection():
    def factory(name: str) -> FakeConnection:
        return FakeConnection(name)

    return factory
