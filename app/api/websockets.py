# app/api/websockets.py
import logging
import asyncio
from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, Depends, status, Query
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError as PydanticValidationError
from starlette.websockets import WebSocketState
from sqlalchemy.orm import Session
from typing import Dict, List

from app.api import deps
from app.core.errors import GameActionError
from app.crud import crud_game
from app.models.enums import ErrorKind
from app.models.game import ActionRequest
from app.services import action_handler
from app.services.action_handler import GameEvent

logger = logging.getLogger("app.api.websockets")  # Logger for this module
router = APIRouter()


class GameConnectionManager:
    """Change-notification bus: one channel per game, one socket per player."""

    def __init__(self):
        # game_id -> user_id -> WebSocket
        self.active_connections: Dict[str, Dict[str, WebSocket]] = {}

    async def connect(self, websocket: WebSocket, game_id: str, user_id: str):
        await websocket.accept()
        if game_id not in self.active_connections:
            self.active_connections[game_id] = {}
        # Check if player is already connected
        if user_id in self.active_connections[game_id]:
            logger.info(f"Player {user_id} reconnected to game {game_id}, closing old connection.")
            try:
                await self.active_connections[game_id][user_id].close(code=status.WS_1001_GOING_AWAY, reason="New connection established")
            except Exception as e:
                logger.warning(f"Error closing old websocket for {user_id}: {e}")
        self.active_connections[game_id][user_id] = websocket
        logger.info(f"Player {user_id} connected to game {game_id}. Current subscribers: {list(self.active_connections[game_id].keys())}")

    def disconnect(self, game_id: str, user_id: str, websocket: WebSocket | None = None):
        connections = self.active_connections.get(game_id)
        if not connections or user_id not in connections:
            return
        if websocket is not None and connections[user_id] is not websocket:
            return # A newer socket replaced this one
        del connections[user_id]
        logger.info(f"Player {user_id} removed from active connections for game {game_id}")
        if not connections:
            del self.active_connections[game_id]

    async def _send_event(self, event: GameEvent, game_id_ctx: str):
        """Helper to dispatch a GameEvent."""
        if event.broadcast:
            logger.debug(f"Broadcasting event {event.type} to game {game_id_ctx} (exclude: {event.exclude_player_id})")
            await self.broadcast_to_game(game_id_ctx, event.to_dict(), exclude_player_id=event.exclude_player_id)
        elif event.target_player_id is not None:
            logger.debug(f"Sending event {event.type} to player {event.target_player_id} in game {game_id_ctx}")
            await self.send_to_player(game_id_ctx, event.target_player_id, event.to_dict())

    async def publish(self, game_id: str, events: List[GameEvent]):
        """Best effort. A failed delivery never undoes the committed action."""
        for event in events:
            await self._send_event(event, game_id)

    async def broadcast_to_game(self, game_id: str, message: dict, exclude_player_id: str | None = None):
        if game_id in self.active_connections:
            tasks = []
            for player_id, connection in list(self.active_connections[game_id].items()):
                if player_id != exclude_player_id:
                    tasks.append(self._send_json_safe(connection, message, player_id, game_id))
            if tasks:
                await asyncio.gather(*tasks)

    async def send_to_player(self, game_id: str, user_id: str, message: dict):
        if game_id in self.active_connections and user_id in self.active_connections[game_id]:
            connection = self.active_connections[game_id][user_id]
            await self._send_json_safe(connection, message, user_id, game_id)

    async def _send_json_safe(self, connection: WebSocket, message: dict, user_id: str, game_id: str):
        try:
            if connection.client_state == WebSocketState.CONNECTED:
                await connection.send_json(message)
            else: # Connection closed before sending
                logger.warning(f"WS for P:{user_id} G:{game_id} was already closed before sending {message.get('type')}. Disconnecting from manager.")
                self.disconnect(game_id, user_id, connection)
        except Exception as e:
            logger.warning(f"Error sending {message.get('type')} to P:{user_id} G:{game_id}: {e}. Disconnecting.")
            self.disconnect(game_id, user_id, connection)

game_manager = GameConnectionManager()


def _invalid_request_event(user_id: str, action_type, detail: str) -> GameEvent:
    payload = {
        "success": False,
        "action_type": action_type,
        "message": detail,
        "error": ErrorKind.VALIDATION.value,
    }
    return GameEvent("action_result", payload, target_player_id=user_id, broadcast=False)


@router.websocket("/ws/game/{game_id}")
async def game_websocket_endpoint(
    websocket: WebSocket,
    game_id: str,
    token: str = Query(..., description="User's JWT for authentication"),
    db: Session = Depends(deps.get_db)
):
    try:
        user_id = await deps.get_current_user_id(token=token)
    except HTTPException as auth_exc:
        logger.warning(f"WS Auth failed for G:{game_id}: {auth_exc.detail}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=f"Authentication failed: {auth_exc.detail}")
        return

    if crud_game.get_game(db, game_id) is None:
        logger.warning(f"G:{game_id} not found. Closing WS for P:{user_id}.")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Game not found")
        return
    if crud_game.get_player(db, game_id, user_id) is None:
        logger.warning(f"P:{user_id} is not in G:{game_id}. Closing WS.")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Player not authorized for this game")
        return

    client_ip = deps.get_client_ip(websocket)
    await game_manager.connect(websocket, game_id, user_id)

    try:
        # Full snapshot first so the client can reconcile from a known state
        state, deadline_events = await run_in_threadpool(action_handler.get_state, db, game_id, user_id)
        await game_manager.send_to_player(game_id, user_id, {"type": "game_state", "payload": state.model_dump(mode="json")})
        await game_manager.publish(game_id, deadline_events)

        while True:
            data = await websocket.receive_json()
            try:
                request = ActionRequest.model_validate(data)
            except PydanticValidationError as e:
                logger.warning(f"P:{user_id} G:{game_id} - malformed action: {e.errors()}")
                await game_manager._send_event(_invalid_request_event(user_id, data.get("action_type") if isinstance(data, dict) else None, "Malformed action."), game_id)
                continue

            result, events = await run_in_threadpool(
                action_handler.process_action,
                db,
                game_id,
                user_id,
                request.action_type,
                request.payload,
                client_ip,
            )
            await game_manager.send_to_player(game_id, user_id, {"type": "action_result", "payload": result.model_dump(mode="json")})
            await game_manager.publish(game_id, events)

    except WebSocketDisconnect:
        logger.info(f"WS Disconnected: P:{user_id} G:{game_id}.")
    except GameActionError as e:
        logger.warning(f"P:{user_id} G:{game_id} - closing WS: {e.message}")
    except Exception as e:
        logger.exception(f"Unexpected error in WS G:{game_id} P:{user_id}: {type(e).__name__} - {e}")
        if websocket.client_state == WebSocketState.CONNECTED:
            try:
                await websocket.send_json({"type": "error", "payload": {"message": f"Internal server error: {type(e).__name__}"}})
            except Exception as send_e:
                logger.warning(f"Could not report error to P:{user_id} G:{game_id}: {send_e}")
    finally:
        if websocket.client_state != WebSocketState.DISCONNECTED:
            try:
                await websocket.close(code=status.WS_1001_GOING_AWAY)
            except RuntimeError as re:
                logger.debug(f"WS for P:{user_id} G:{game_id} already closed: {re}")
        game_manager.disconnect(game_id, user_id, websocket)
