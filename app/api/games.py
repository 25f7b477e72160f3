# app/api/games.py
import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api import deps
from app.api.websockets import game_manager
from app.core.errors import GameActionError
from app.crud import crud_game
from app.models.enums import ErrorKind
from app.models.game import ActionRequest, ActionResult, GameCreateRequest, GameStateResponse
from app.services import action_handler

logger = logging.getLogger("app.api.games")  # Logger for this module
router = APIRouter()

ERROR_STATUS_CODES = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.RATE_LIMIT: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.DEPENDENCY_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _require_game(db: Session, game_id: str):
    game = crud_game.get_game(db, game_id)
    if game is None:
        raise HTTPException(status_code=404, detail="Game not found.")
    return game


def _http_error(e: GameActionError) -> HTTPException:
    return HTTPException(status_code=ERROR_STATUS_CODES[e.kind], detail=e.message)


@router.post("/", response_model=GameStateResponse, status_code=201)
def create_game(
    request_data: GameCreateRequest,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.get_current_user_id),
):
    """Creates a game in the lobby. The creator holds the first turn."""
    game = action_handler.create_game(db, user_id, request_data.mode, request_data.max_messages)
    return action_handler.build_game_state(db, game, user_id)


@router.post("/{game_id}/join", response_model=GameStateResponse)
def join_game(
    game_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.get_current_user_id),
):
    _require_game(db, game_id)
    try:
        game, events = action_handler.join_game(db, game_id, user_id)
    except GameActionError as e:
        logger.warning(f"G:{game_id} P:{user_id} - join rejected: {e.message}")
        raise _http_error(e)
    background_tasks.add_task(game_manager.publish, game_id, events)
    return action_handler.build_game_state(db, game, user_id)


@router.get("/{game_id}/state", response_model=GameStateResponse)
def get_game_state(
    game_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.get_current_user_id),
):
    """Authoritative snapshot. Elapsed deadlines are applied before reading."""
    _require_game(db, game_id)
    try:
        state, events = action_handler.get_state(db, game_id, user_id)
    except GameActionError as e:
        raise _http_error(e)
    background_tasks.add_task(game_manager.publish, game_id, events)
    return state


@router.post("/{game_id}/actions", response_model=ActionResult)
def submit_action(
    game_id: str,
    action: ActionRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.get_current_user_id),
):
    _require_game(db, game_id)
    result, events = action_handler.process_action(
        db, game_id, user_id, action.action_type, action.payload, client_ip=deps.get_client_ip(request)
    )
    background_tasks.add_task(game_manager.publish, game_id, events)
    if not result.success:
        # The structured result is the body for rejections too
        return JSONResponse(status_code=ERROR_STATUS_CODES[result.error], content=result.model_dump(mode="json"))
    return result
