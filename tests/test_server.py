"""End-to-end checks of the WebSocket endpoint."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from arena_relay.config import MULTIPLAYER_MAP_ID, RelayConfig
from arena_relay.dispatcher import INVALID_JSON_MESSAGE
from arena_relay.server import OUTBOUND_QUEUE_LIMIT, WebSocketConnection, create_app


@pytest.fixture()
def client():
    with TestClient(create_app(RelayConfig())) as test_client:
        yield test_client


def test_healthcheck_reports_sessions(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "sessions": 0, "lobby": None}


def test_invalid_frame_gets_error(client: TestClient) -> None:
    with client.websocket_connect("/") as ws:
        ws.send_text("not json at all")
        assert ws.receive_json() == {"type": "error", "message": INVALID_JSON_MESSAGE}


def test_players_see_each_other_and_departures(client: TestClient) -> None:
    with client.websocket_connect("/") as first:
        first.send_json({"type": "join_map", "map_id": "m1", "requestedPlayerId": "alice"})
        assert first.receive_json()["yourId"] == "alice"

        with client.websocket_connect("/") as second:
            second.send_json({"type": "join_map", "map_id": "m1"})
            ack = second.receive_json()
            assert ack["type"] == "map_joined_ack"
            assert ack["existingPlayers"][0]["playerId"] == "alice"

            joined = first.receive_json()
            assert joined["type"] == "player_joined"
            assert joined["playerId"] == ack["yourId"]

            second.send_json({"type": "player_update", "data": {"x": 12, "y": 34}})
            update = first.receive_json()
            assert update["type"] == "game_state_update"
            assert (update["playerData"]["x"], update["playerData"]["y"]) == (12, 34)

        left = first.receive_json()
        assert left == {"type": "player_left", "playerId": ack["yourId"]}


def test_two_players_reach_match_start(client: TestClient) -> None:
    with client.websocket_connect("/") as first, client.websocket_connect("/") as second:
        first.send_json({"type": "join_map", "map_id": MULTIPLAYER_MAP_ID})
        assert first.receive_json()["type"] == "map_joined_ack"
        assert first.receive_json()["type"] == "lobby_update"

        second.send_json({"type": "join_map", "map_id": MULTIPLAYER_MAP_ID})
        assert [second.receive_json()["type"] for _ in range(3)] == [
            "map_joined_ack",
            "lobby_update",
            "load_match",
        ]
        assert [first.receive_json()["type"] for _ in range(3)] == [
            "lobby_update",
            "player_joined",
            "load_match",
        ]

        first.send_json({"type": "match_assets_ready"})
        second.send_json({"type": "match_assets_ready"})
        assert first.receive_json() == {"type": "start_match_simulation"}
        assert second.receive_json() == {"type": "start_match_simulation"}


def test_closed_socket_leaves_no_session_behind(client: TestClient) -> None:
    world = client.app.state.world
    with client.websocket_connect("/") as ws:
        ws.send_json({"type": "join_map", "map_id": MULTIPLAYER_MAP_ID, "requestedPlayerId": "ghost"})
        assert ws.receive_json()["yourId"] == "ghost"

    assert "ghost" not in world.registry
    assert world.store.get("ghost") is None
    assert world.matchmaker.lobby is None
    assert client.get("/health").json()["sessions"] == 0


def test_outbound_queue_overflow_drops_only_that_connection() -> None:
    stalled = SimpleNamespace(
        client=None,
        client_state=WebSocketState.CONNECTED,
        application_state=WebSocketState.CONNECTED,
    )
    connection = WebSocketConnection(stalled)
    assert connection.is_open()

    for _ in range(OUTBOUND_QUEUE_LIMIT * 4):
        connection.send("{}")

    assert connection._queue.qsize() == OUTBOUND_QUEUE_LIMIT
    assert connection.closed
    assert not connection.is_open()
