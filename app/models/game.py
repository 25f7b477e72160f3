# app/models/game.py
from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Dict, Any

from app.models.enums import ActionType, ErrorKind, GameMode, GameStatus, PointKind


class PlayerPublic(BaseModel):
    user_id: str
    score: int = 0
    consecutive_correct_guesses: int = 0
    has_left: bool = False
    joined_at: datetime

    class Config:
        from_attributes = True


class MessagePublic(BaseModel):
    id: int
    game_id: str
    user_id: str
    type: str = "text"
    content: str | None = None # Withheld from other players until solved
    cipher_text: str
    cipher_length: int
    hint_level: int = 0
    strikes: int = 0
    ai_hint: str | None = None
    is_solved: bool = False
    solved_by: str | None = None
    winner_points: int | None = None
    author_points: int | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class GamePublic(BaseModel):
    id: str
    display_id: int
    status: GameStatus
    mode: GameMode
    created_by: str
    current_turn_user_id: str | None = None
    max_messages: int | None = None
    solving_proposal_created_at: datetime | None = None
    solve_proposal_confirmations: List[str] = []
    solving_started_at: datetime | None = None
    team_pot: int = 0
    team_consecutive_correct: int = 0
    fever_mode_remaining: int = 0

    class Config:
        from_attributes = True


class GameStateResponse(BaseModel):
    game: GamePublic
    players: List[PlayerPublic]
    messages: List[MessagePublic]
    active_target_id: int | None = None
    proposal_deadline: datetime | None = None
    free_for_all_at: datetime | None = None
    timestamp: datetime # Server clock, the source of truth for countdowns


class GameCreateRequest(BaseModel):
    mode: GameMode = GameMode.FREE
    max_messages: int | None = Field(default=None, ge=1)


class ActionRequest(BaseModel):
    action_type: ActionType
    payload: Dict[str, Any] = Field(default_factory=dict)


class PointDistribution(BaseModel):
    total_points: int
    winner_points: int
    author_points: int
    kind: PointKind


class ActionResult(BaseModel):
    success: bool
    action_type: ActionType
    message: str | None = None
    error: ErrorKind | None = None
    rate_limit_scope: str | None = None # "player" or "ip" for RATE_LIMIT errors
    # solve_attempt
    is_match: bool | None = None
    similarity: float | None = None
    distribution: PointDistribution | None = None
    # get_hint
    hint_level: int | None = None
    cipher_text: str | None = None
    ai_hint: str | None = None
    # send_message
    message_id: int | None = None
    duplicate: bool = False
    game_status: GameStatus | None = None
