# app/services/game_state_machine.py
"""
Phase rules for a game: lobby -> texting -> solving -> completed.

Everything here works on objects carrying the Game / Message / GamePlayer
attributes and never touches the session. Transition helpers modify the game
object IN PLACE; the action handler decides when to persist.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel

from app.core.config import settings
from app.core.errors import AuthorizationError, ValidationError
from app.models.enums import GameStatus, MessageType, TEXTING_STATUSES
from app.models.game import PointDistribution
from app.services import scoring
from app.services.similarity import MATCH_THRESHOLD, similarity

logger = logging.getLogger("app.services.game_state_machine")  # Logger for this module


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; all stored timestamps are UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_texting(game) -> bool:
    return game.status in {s.value for s in TEXTING_STATUSES}


def require_status(game, allowed: Iterable[str], action: str) -> None:
    allowed = set(allowed)
    if game.status not in allowed:
        raise AuthorizationError(f"Cannot {action} while the game is '{game.status}'.")


# --- Texting phase -----------------------------------------------------------

def normalize_content(content: Optional[str]) -> str:
    if content is not None and not isinstance(content, str):
        raise ValidationError("Message must be text.")
    return " ".join((content or "").split())


def validate_message_content(content: Optional[str], existing_contents: Iterable[str]) -> str:
    """Returns the normalized content or raises ValidationError."""
    normalized = normalize_content(content)
    if not normalized:
        raise ValidationError("Message cannot be empty.")

    word_count = len(normalized.split(" "))
    if word_count < settings.MESSAGE_WORD_LIMIT_MIN or word_count > settings.MESSAGE_WORD_LIMIT_MAX:
        raise ValidationError(
            f"Message must be between {settings.MESSAGE_WORD_LIMIT_MIN} and {settings.MESSAGE_WORD_LIMIT_MAX} words."
        )
    if len(normalized) > settings.MESSAGE_MAX_CHARS:
        raise ValidationError(f"Message must be at most {settings.MESSAGE_MAX_CHARS} characters.")

    lowered = normalized.lower()
    if any(lowered == existing.lower() for existing in existing_contents):
        raise ValidationError("That message already exists in this game.")
    return normalized


def should_open_proposal(text_message_count: int, max_messages: Optional[int]) -> bool:
    return max_messages is not None and text_message_count >= max_messages


# --- Solve proposal sub-state ------------------------------------------------

def is_proposal_open(game) -> bool:
    return game.solving_proposal_created_at is not None


def proposal_deadline(game) -> Optional[datetime]:
    created = ensure_utc(game.solving_proposal_created_at)
    if created is None:
        return None
    return created + timedelta(seconds=settings.SOLVE_PROPOSAL_WINDOW_SECONDS)


def proposal_window_elapsed(game, now: datetime) -> bool:
    deadline = proposal_deadline(game)
    return deadline is not None and now >= deadline


def open_proposal(game, now: datetime, seed_confirmations: Sequence[str] = ()) -> None:
    game.solving_proposal_created_at = now
    game.solve_proposal_confirmations = list(dict.fromkeys(seed_confirmations))


def clear_proposal(game) -> None:
    game.solving_proposal_created_at = None
    game.solve_proposal_confirmations = []


def add_confirmation(game, user_id: str) -> bool:
    """Idempotent set-add. Returns False when the user had already confirmed."""
    confirmations = list(game.solve_proposal_confirmations or [])
    if user_id in confirmations:
        return False
    game.solve_proposal_confirmations = confirmations + [user_id]
    return True


def all_confirmed(confirmations: Iterable[str], active_player_ids: Iterable[str]) -> bool:
    active = set(active_player_ids)
    return bool(active) and active.issubset(set(confirmations or []))


def start_solving(game, now: datetime) -> None:
    clear_proposal(game)
    game.status = GameStatus.SOLVING.value
    game.current_turn_user_id = None
    game.solving_started_at = now
    logger.info(f"G:{game.id} - entering solving phase.")


def complete_game(game) -> None:
    clear_proposal(game)
    game.status = GameStatus.COMPLETED.value
    game.solving_started_at = None
    logger.info(f"G:{game.id} - completed. Team pot: {game.team_pot}")


def apply_due_transitions(game, now: datetime) -> bool:
    """Finalizes an elapsed proposal window. Returns True if the game changed."""
    if is_texting(game) and is_proposal_open(game) and proposal_window_elapsed(game, now):
        start_solving(game, now)
        return True
    return False


# --- Solving phase -----------------------------------------------------------

def is_solvable(message) -> bool:
    return (
        message.type != MessageType.SYSTEM.value
        and not message.is_solved
        and message.strikes < settings.MAX_STRIKES
    )


def select_target_message(messages: Sequence):
    """The newest unsolved, not struck-out message; messages are in chronological order."""
    for message in reversed(list(messages)):
        if is_solvable(message):
            return message
    return None


def free_for_all_at(game) -> Optional[datetime]:
    started = ensure_utc(game.solving_started_at)
    if started is None:
        return None
    return started + timedelta(seconds=settings.SOLVING_MODE_DURATION_SECONDS)


def is_free_for_all(game, author_has_left: bool, now: datetime) -> bool:
    if author_has_left:
        return True
    opens_at = free_for_all_at(game)
    return opens_at is not None and now > opens_at


def require_target_turn(game, target, user_id: str, author_has_left: bool, now: datetime) -> None:
    if target.user_id == user_id:
        return
    if is_free_for_all(game, author_has_left, now):
        return
    raise AuthorizationError("Wait for the author or the free-for-all!")


def next_hint_level(current_level: int) -> int:
    if current_level >= settings.MAX_HINT_LEVEL:
        raise ValidationError("No more hints available for this message.")
    return current_level + 1


class GuessOutcome(BaseModel):
    is_match: bool
    similarity: float
    distribution: PointDistribution | None = None
    guesser_consecutive: int
    team_consecutive_correct: int
    fever_mode_remaining: int
    strikes: int
    is_lost: bool = False


def evaluate_guess(game, target, guesser, guess_text: str) -> GuessOutcome:
    """Pure scoring of one guess against the active target."""
    score = similarity(guess_text, target.content)

    if score >= MATCH_THRESHOLD:
        guesser_consecutive = guesser.consecutive_correct_guesses + 1
        distribution = scoring.award_for_solve(
            content=target.content,
            hint_level=target.hint_level,
            match_similarity=score,
            guesser_id=guesser.user_id,
            author_id=target.user_id,
            guesser_consecutive_after=guesser_consecutive,
            fever_mode_remaining=game.fever_mode_remaining,
        )
        team_consecutive, fever_remaining = scoring.advance_team_bonus(
            game.team_consecutive_correct, game.fever_mode_remaining
        )
        return GuessOutcome(
            is_match=True,
            similarity=score,
            distribution=distribution,
            guesser_consecutive=guesser_consecutive,
            team_consecutive_correct=team_consecutive,
            fever_mode_remaining=fever_remaining,
            strikes=target.strikes,
        )

    # A wrong guess zeroes the whole team bonus, but only the guesser's own streak.
    strikes = target.strikes + 1
    return GuessOutcome(
        is_match=False,
        similarity=score,
        guesser_consecutive=0,
        team_consecutive_correct=0,
        fever_mode_remaining=0,
        strikes=strikes,
        is_lost=strikes >= settings.MAX_STRIKES,
    )


def player_order(players: Sequence) -> List:
    return sorted(players, key=lambda p: ensure_utc(p.joined_at))


def active_player_ids(players: Sequence) -> List[str]:
    return [p.user_id for p in player_order(players) if not p.has_left]
