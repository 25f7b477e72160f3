# app/crud/crud_game.py
"""
Row-level access to games, players and messages.

Functions flush but never commit: the action handler owns the transaction so
that one player action is applied entirely or not at all.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.schemas.game import Game, GamePlayer, Message

logger = logging.getLogger("app.crud.game")  # Logger for this module


# --- Games -------------------------------------------------------------------

def create_game(db: Session, creator_id: str, mode: str, max_messages: Optional[int], now: datetime) -> Game:
    next_display_id = (db.query(func.max(Game.display_id)).scalar() or 0) + 1
    db_game = Game(
        display_id=next_display_id,
        status="lobby",
        mode=mode,
        created_by=creator_id,
        current_turn_user_id=creator_id,
        max_messages=max_messages,
        solve_proposal_confirmations=[],
    )
    db.add(db_game)
    db.flush() # Need db_game.id before adding the creator as a player

    db.add(GamePlayer(game_id=db_game.id, user_id=creator_id, joined_at=now))
    db.flush()
    logger.info(f"Created game {db_game.id} (#{next_display_id}, mode {mode}) for creator {creator_id}")
    return db_game


def get_game(db: Session, game_id: str, for_update: bool = False) -> Game | None:
    query = db.query(Game).filter(Game.id == game_id)
    if for_update:
        # Serializes concurrent writers on the same game (no-op on SQLite)
        query = query.with_for_update()
    return query.first()


def get_games_with_open_proposal(db: Session) -> List[Game]:
    return (
        db.query(Game)
        .filter(Game.solving_proposal_created_at.isnot(None), Game.status.in_(["lobby", "texting", "active"]))
        .all()
    )


# --- Players -----------------------------------------------------------------

def get_players(db: Session, game_id: str) -> List[GamePlayer]:
    # Score updates bypass the identity map, so always overwrite cached rows
    return (
        db.query(GamePlayer)
        .populate_existing()
        .filter(GamePlayer.game_id == game_id)
        .order_by(GamePlayer.joined_at.asc(), GamePlayer.id.asc())
        .all()
    )


def get_player(db: Session, game_id: str, user_id: str) -> GamePlayer | None:
    return db.query(GamePlayer).filter(GamePlayer.game_id == game_id, GamePlayer.user_id == user_id).first()


def add_player(db: Session, game_id: str, user_id: str, now: datetime) -> GamePlayer:
    db_player = GamePlayer(game_id=game_id, user_id=user_id, joined_at=now)
    db.add(db_player)
    db.flush()
    return db_player


def count_active_players(db: Session, game_id: str) -> int:
    return (
        db.query(func.count(GamePlayer.id))
        .filter(GamePlayer.game_id == game_id, GamePlayer.has_left.is_(False))
        .scalar()
    )


def add_to_player_score(db: Session, game_id: str, user_id: str, points: int) -> None:
    if points <= 0:
        return
    db.execute(
        update(GamePlayer)
        .where(GamePlayer.game_id == game_id, GamePlayer.user_id == user_id)
        .values(score=GamePlayer.score + points)
        .execution_options(synchronize_session=False)
    )


# --- Messages ----------------------------------------------------------------

def get_messages(db: Session, game_id: str) -> List[Message]:
    return db.query(Message).filter(Message.game_id == game_id).order_by(Message.id.asc()).all()


def get_message(db: Session, message_id: int) -> Message | None:
    return db.query(Message).filter(Message.id == message_id).first()


def get_message_by_client_id(db: Session, game_id: str, client_message_id: str) -> Message | None:
    return db.query(Message).filter(
        Message.game_id == game_id,
        Message.client_message_id == client_message_id,
    ).first()


def count_text_messages(db: Session, game_id: str) -> int:
    return (
        db.query(func.count(Message.id))
        .filter(Message.game_id == game_id, Message.type == "text")
        .scalar()
    )


def create_message(
    db: Session,
    game_id: str,
    user_id: str,
    content: str,
    cipher_text: str,
    now: datetime,
    client_message_id: Optional[str] = None,
    message_type: str = "text",
) -> Message:
    db_message = Message(
        game_id=game_id,
        user_id=user_id,
        type=message_type,
        client_message_id=client_message_id,
        content=content,
        cipher_text=cipher_text,
        cipher_length=len(content),
        hint_level=0,
        strikes=0,
        is_solved=False,
        created_at=now,
    )
    db.add(db_message)
    db.flush()
    return db_message


def _unsolved(message_id: int):
    return (
        Message.id == message_id,
        Message.is_solved.is_(False),
        Message.strikes < settings.MAX_STRIKES,
    )


def mark_message_solved(db: Session, message_id: int, solved_by: str, winner_points: int, author_points: int) -> bool:
    """
    Compare-and-swap on is_solved = false. Returns False if another actor won the race.
    Loaded Message objects are not synchronized; refresh them afterwards.
    """
    result = db.execute(
        update(Message)
        .where(*_unsolved(message_id))
        .values(is_solved=True, solved_by=solved_by, winner_points=winner_points, author_points=author_points)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def record_strike(db: Session, message_id: int, expected_strikes: int) -> bool:
    """Adds a strike if nobody changed the message meanwhile; the last strike loses the word."""
    new_strikes = expected_strikes + 1
    values = {"strikes": new_strikes}
    if new_strikes >= settings.MAX_STRIKES:
        values.update(is_solved=True, solved_by=None, winner_points=0, author_points=0)
    result = db.execute(
        update(Message)
        .where(*_unsolved(message_id), Message.strikes == expected_strikes)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def advance_hint(
    db: Session,
    message_id: int,
    expected_level: int,
    new_level: int,
    cipher_text: str,
    ai_hint: Optional[str] = None,
) -> bool:
    values = {"hint_level": new_level, "cipher_text": cipher_text}
    if ai_hint is not None:
        values["ai_hint"] = ai_hint
    result = db.execute(
        update(Message)
        .where(*_unsolved(message_id), Message.hint_level == expected_level)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
