# app/crud/crud_hint_request.py
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.schemas.hint_request import AiHintRequest


def count_for_player_in_game(db: Session, game_id: str, user_id: str) -> int:
    return (
        db.query(func.count(AiHintRequest.id))
        .filter(AiHintRequest.game_id == game_id, AiHintRequest.user_id == user_id)
        .scalar()
    )


def count_for_ip_on_day(db: Session, client_ip: str, day: date) -> int:
    return (
        db.query(func.count(AiHintRequest.id))
        .filter(AiHintRequest.client_ip == client_ip, AiHintRequest.requested_on == day)
        .scalar()
    )


def log_hint_request(
    db: Session,
    game_id: str,
    user_id: str,
    message_id: int,
    client_ip: Optional[str],
    day: date,
    provider_succeeded: bool,
) -> AiHintRequest:
    db_request = AiHintRequest(
        game_id=game_id,
        user_id=user_id,
        message_id=message_id,
        client_ip=client_ip,
        requested_on=day,
        provider_succeeded=provider_succeeded,
    )
    db.add(db_request)
    db.flush()
    return db_request
