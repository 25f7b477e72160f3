# tests/api/test_websockets_api.py
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.api.websockets import game_manager
from app.core.config import settings
from app.core.security import create_player_token

GAMES = f"{settings.API_V1_STR}/games"

def _token(user_id: str) -> str:
    return create_player_token(user_id)

def _game_with_players(client: TestClient, auth_headers, *players: str) -> str:
    game_id = client.post(f"{GAMES}/", json={}, headers=auth_headers(players[0])).json()["game"]["id"]
    for user_id in players[1:]:
        client.post(f"{GAMES}/{game_id}/join", headers=auth_headers(user_id))
    return game_id

def test_ws_rejects_bad_token(client: TestClient, auth_headers):
    game_id = _game_with_players(client, auth_headers, "alice")
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"/ws/game/{game_id}?token=not-a-jwt") as websocket:
            websocket.receive_json()
    assert exc_info.value.code == 1008

def test_ws_rejects_non_players(client: TestClient, auth_headers):
    game_id = _game_with_players(client, auth_headers, "alice")
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"/ws/game/{game_id}?token={_token('mallory')}") as websocket:
            websocket.receive_json()
    assert exc_info.value.code == 1008

def test_ws_sends_snapshot_on_connect(client: TestClient, auth_headers):
    game_id = _game_with_players(client, auth_headers, "alice", "bob")
    with client.websocket_connect(f"/ws/game/{game_id}?token={_token('alice')}") as websocket:
        data = websocket.receive_json()
        assert data["type"] == "game_state"
        assert data["payload"]["game"]["id"] == game_id
        assert [p["user_id"] for p in data["payload"]["players"]] == ["alice", "bob"]
        assert "alice" in game_manager.active_connections[game_id]

def test_ws_action_is_answered_and_broadcast(client: TestClient, auth_headers):
    game_id = _game_with_players(client, auth_headers, "alice", "bob")
    with client.websocket_connect(f"/ws/game/{game_id}?token={_token('alice')}") as alice_ws:
        alice_ws.receive_json() # snapshot
        with client.websocket_connect(f"/ws/game/{game_id}?token={_token('bob')}") as bob_ws:
            bob_ws.receive_json() # snapshot

            alice_ws.send_json({"action_type": "send_message", "payload": {"content": "rainy day"}})
            result = alice_ws.receive_json()
            assert result["type"] == "action_result"
            assert result["payload"]["success"] is True

            inserted = bob_ws.receive_json()
            assert inserted["type"] == "message_inserted"
            assert inserted["payload"]["content"] is None
            assert len(inserted["payload"]["cipher_text"]) == len("rainy day")
            updated = bob_ws.receive_json()
            assert updated["type"] == "game_updated"
            assert updated["payload"]["current_turn_user_id"] == "bob"

def test_ws_rejected_action_goes_only_to_actor(client: TestClient, auth_headers):
    game_id = _game_with_players(client, auth_headers, "alice", "bob")
    with client.websocket_connect(f"/ws/game/{game_id}?token={_token('bob')}") as bob_ws:
        bob_ws.receive_json()
        bob_ws.send_json({"action_type": "send_message", "payload": {"content": "too early"}})
        result = bob_ws.receive_json()
        assert result["type"] == "action_result"
        assert result["payload"]["success"] is False
        assert result["payload"]["error"] == "authorization_error"

def test_ws_malformed_action(client: TestClient, auth_headers):
    game_id = _game_with_players(client, auth_headers, "alice")
    with client.websocket_connect(f"/ws/game/{game_id}?token={_token('alice')}") as websocket:
        websocket.receive_json()
        websocket.send_json({"action_type": "teleport"})
        result = websocket.receive_json()
        assert result["type"] == "action_result"
        assert result["payload"]["error"] == "validation_error"
