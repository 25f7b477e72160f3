# app/services/action_handler.py
"""
The only writer of authoritative game state.

Every player action runs as one transaction: the game row is locked, elapsed
deadlines are applied, the action is validated against fresh rows and the
result is committed or rolled back as a whole. Callers get an ActionResult for
the acting player and a list of GameEvents to publish on the game channel.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Literal, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    AuthorizationError,
    ConflictError,
    DependencyFailure,
    GameActionError,
    RateLimitError,
    ValidationError,
)
from app.crud import crud_game, crud_hint_request
from app.models.enums import ActionType, GameMode, GameStatus, MessageType, TEXTING_STATUSES
from app.models.game import ActionResult, GamePublic, GameStateResponse, MessagePublic, PlayerPublic
from app.services import game_state_machine as machine
from app.services import hint_provider
from app.services.cipher import generate_cipher
from app.services.turn_rotation import next_turn

logger = logging.getLogger("app.services.action_handler")  # Logger for this module

GameEventType = Literal[
    "game_updated",
    "message_inserted",
    "message_updated",
    "players_updated",
    "action_result",
]

TEXTING = {s.value for s in TEXTING_STATUSES}


class GameEvent:
    def __init__(self, event_type: GameEventType, payload: Dict[str, Any], target_player_id: str | None = None, broadcast: bool = True, exclude_player_id: str | None = None):
        self.type = event_type
        self.payload = payload
        self.target_player_id = target_player_id # Only used when broadcast is False
        self.broadcast = broadcast
        self.exclude_player_id = exclude_player_id # For broadcasts

    def to_dict(self): # For sending over WebSocket
        return {"type": self.type, "payload": self.payload}


# --- Snapshots ---------------------------------------------------------------

def public_message(message, viewer_id: Optional[str] = None) -> MessagePublic:
    """Unsolved content is only visible to its author."""
    data = MessagePublic.model_validate(message)
    hidden = (
        not message.is_solved
        and message.type != MessageType.SYSTEM.value
        and message.user_id != viewer_id
    )
    if hidden:
        data.content = None
    return data


def _game_event(game) -> GameEvent:
    return GameEvent("game_updated", GamePublic.model_validate(game).model_dump(mode="json"))


def _message_event(event_type: GameEventType, message) -> GameEvent:
    return GameEvent(event_type, public_message(message).model_dump(mode="json"))


def _players_event(players) -> GameEvent:
    return GameEvent(
        "players_updated",
        {"players": [PlayerPublic.model_validate(p).model_dump(mode="json") for p in machine.player_order(players)]},
    )


def build_game_state(db: Session, game, viewer_id: Optional[str], now=None) -> GameStateResponse:
    now = now or machine.utcnow()
    players = crud_game.get_players(db, game.id)
    messages = crud_game.get_messages(db, game.id)

    target = None
    ffa_at = None
    if game.status == GameStatus.SOLVING.value:
        target = machine.select_target_message(messages)
        ffa_at = machine.free_for_all_at(game)

    return GameStateResponse(
        game=GamePublic.model_validate(game),
        players=[PlayerPublic.model_validate(p) for p in machine.player_order(players)],
        messages=[public_message(m, viewer_id) for m in messages],
        active_target_id=target.id if target else None,
        proposal_deadline=machine.proposal_deadline(game),
        free_for_all_at=ffa_at,
        timestamp=now,
    )


# --- Shared helpers ----------------------------------------------------------

def _payload_value(payload: Dict[str, Any], *keys: str):
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


def _target_id(payload: Dict[str, Any]) -> Optional[int]:
    value = _payload_value(payload, "target_id", "targetId")
    if value is None:
        return None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    # bool is an int subclass
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise ValidationError("Target id must be a whole number.")


def _finish_if_nothing_left(db: Session, game) -> bool:
    """A solving game without a target is over."""
    if game.status != GameStatus.SOLVING.value:
        return False
    if machine.select_target_message(crud_game.get_messages(db, game.id)) is None:
        machine.complete_game(game)
        return True
    return False


def _settle_deadlines(db: Session, game, now) -> List[GameEvent]:
    changed = machine.apply_due_transitions(game, now)
    changed = _finish_if_nothing_left(db, game) or changed
    if not changed:
        return []
    logger.info(f"G:{game.id} - deadline reached, status is now '{game.status}'.")
    return [_game_event(game)]


def _start_solving(db: Session, game, now) -> None:
    machine.start_solving(game, now)
    _finish_if_nothing_left(db, game)


def _active_target(db: Session, game, requested_id: Optional[int]):
    """Resolves the active target and checks it against the id the client acted on."""
    machine.require_status(game, [GameStatus.SOLVING.value], "solve messages")
    messages = crud_game.get_messages(db, game.id)
    target = machine.select_target_message(messages)
    if target is None:
        raise ConflictError("There is nothing left to solve.")

    if requested_id is not None and requested_id != target.id:
        requested = next((m for m in messages if m.id == requested_id), None)
        if requested is None:
            raise ValidationError("Unknown message.")
        if requested.is_solved:
            raise ConflictError("That message was already resolved.")
        raise AuthorizationError("That message is not the active target.")
    return target, messages


def _author_has_left(db: Session, game, target) -> bool:
    author = crud_game.get_player(db, game.id, target.user_id)
    return author is None or author.has_left


def _advance_after_resolution(db: Session, game, messages, now) -> None:
    """Once the target is solved the next one gets a fresh author window."""
    if machine.select_target_message(messages) is None:
        machine.complete_game(game)
    else:
        game.solving_started_at = now


# --- Actions -----------------------------------------------------------------

def _send_message(db: Session, game, player, payload, now, client_ip) -> Tuple[ActionResult, List[GameEvent]]:
    machine.require_status(game, TEXTING, "send messages")
    messages = crud_game.get_messages(db, game.id)

    client_message_id = _payload_value(payload, "client_message_id", "clientMessageId")
    if client_message_id:
        existing = crud_game.get_message_by_client_id(db, game.id, str(client_message_id))
        if existing is not None:
            if existing.user_id != player.user_id:
                raise ConflictError("That message id is already taken.")
            logger.info(f"G:{game.id} P:{player.user_id} - duplicate send for client id {client_message_id}, returning original.")
            return ActionResult(success=True, action_type=ActionType.SEND_MESSAGE, message_id=existing.id, duplicate=True, game_status=game.status), []

    normalized = machine.normalize_content(_payload_value(payload, "content"))
    text_messages = [m for m in messages if m.type == MessageType.TEXT.value]
    if text_messages and normalized:
        newest = text_messages[-1]
        recent = now - machine.ensure_utc(newest.created_at) <= timedelta(seconds=settings.MESSAGE_RETRY_WINDOW_SECONDS)
        if newest.user_id == player.user_id and newest.content.lower() == normalized.lower() and recent:
            logger.info(f"G:{game.id} P:{player.user_id} - retried send within {settings.MESSAGE_RETRY_WINDOW_SECONDS}s, returning original.")
            return ActionResult(success=True, action_type=ActionType.SEND_MESSAGE, message_id=newest.id, duplicate=True, game_status=game.status), []

    if machine.is_proposal_open(game):
        raise AuthorizationError("A solve proposal is pending.")
    if game.current_turn_user_id != player.user_id:
        raise AuthorizationError("It's not your turn.")

    content = machine.validate_message_content(normalized, [m.content for m in text_messages])
    message = crud_game.create_message(
        db,
        game_id=game.id,
        user_id=player.user_id,
        content=content,
        cipher_text=generate_cipher(content, 0),
        now=now,
        client_message_id=str(client_message_id) if client_message_id else None,
    )

    # Rotation always uses the player list as it is right now
    active_ids = machine.active_player_ids(crud_game.get_players(db, game.id))
    game.current_turn_user_id = next_turn(active_ids, player.user_id)
    if game.status == GameStatus.LOBBY.value:
        game.status = GameStatus.TEXTING.value

    if machine.should_open_proposal(len(text_messages) + 1, game.max_messages):
        machine.open_proposal(game, now)
        logger.info(f"G:{game.id} - message limit {game.max_messages} reached, solve proposal opened.")

    logger.info(f"G:{game.id} P:{player.user_id} - sent message {message.id}. Next turn: {game.current_turn_user_id}")
    result = ActionResult(success=True, action_type=ActionType.SEND_MESSAGE, message_id=message.id, game_status=game.status)
    return result, [_message_event("message_inserted", message), _game_event(game)]


def _require_open_proposal(game) -> None:
    if not machine.is_texting(game) or not machine.is_proposal_open(game):
        raise ConflictError("There is no open solve proposal.")


def _propose_solve(db: Session, game, player, payload, now, client_ip) -> Tuple[ActionResult, List[GameEvent]]:
    machine.require_status(game, TEXTING, "propose solving")
    if machine.is_proposal_open(game):
        raise ConflictError("A solve proposal is already open.")
    if crud_game.count_text_messages(db, game.id) == 0:
        raise ValidationError("There are no messages to solve yet.")

    machine.open_proposal(game, now, [player.user_id])
    active_ids = machine.active_player_ids(crud_game.get_players(db, game.id))
    if machine.all_confirmed(game.solve_proposal_confirmations, active_ids):
        _start_solving(db, game, now)

    logger.info(f"G:{game.id} P:{player.user_id} - proposed solving.")
    return ActionResult(success=True, action_type=ActionType.PROPOSE_SOLVE, game_status=game.status), [_game_event(game)]


def _deny_solve(db: Session, game, player, payload, now, client_ip) -> Tuple[ActionResult, List[GameEvent]]:
    _require_open_proposal(game)
    machine.clear_proposal(game)
    logger.info(f"G:{game.id} P:{player.user_id} - denied the solve proposal.")
    return ActionResult(success=True, action_type=ActionType.DENY_SOLVE, game_status=game.status), [_game_event(game)]


def _confirm_solve(db: Session, game, player, payload, now, client_ip) -> Tuple[ActionResult, List[GameEvent]]:
    _require_open_proposal(game)
    added = machine.add_confirmation(game, player.user_id)

    active_ids = machine.active_player_ids(crud_game.get_players(db, game.id))
    if machine.all_confirmed(game.solve_proposal_confirmations, active_ids):
        _start_solving(db, game, now)
    elif not added:
        return ActionResult(success=True, action_type=ActionType.CONFIRM_SOLVE, message="Already confirmed.", game_status=game.status), []

    logger.info(f"G:{game.id} P:{player.user_id} - confirmed solving ({len(game.solve_proposal_confirmations or [])}/{len(active_ids)}).")
    return ActionResult(success=True, action_type=ActionType.CONFIRM_SOLVE, game_status=game.status), [_game_event(game)]


def _solve_attempt(db: Session, game, player, payload, now, client_ip) -> Tuple[ActionResult, List[GameEvent]]:
    target, messages = _active_target(db, game, _target_id(payload))
    guess_text = _payload_value(payload, "guess_text", "guessText")
    if not isinstance(guess_text, str) or not guess_text.strip():
        raise ValidationError("Guess cannot be empty.")

    machine.require_target_turn(game, target, player.user_id, _author_has_left(db, game, target), now)
    outcome = machine.evaluate_guess(game, target, player, guess_text)

    if outcome.is_match:
        dist = outcome.distribution
        if not crud_game.mark_message_solved(db, target.id, player.user_id, dist.winner_points, dist.author_points):
            raise ConflictError("Someone else solved that message first.")
        crud_game.add_to_player_score(db, game.id, player.user_id, dist.winner_points)
        crud_game.add_to_player_score(db, game.id, target.user_id, dist.author_points)
        game.team_pot = (game.team_pot or 0) + dist.total_points
        logger.info(
            f"G:{game.id} P:{player.user_id} - solved message {target.id} ({dist.kind.value}) "
            f"for {dist.winner_points}+{dist.author_points} points."
        )
    else:
        if not crud_game.record_strike(db, target.id, target.strikes):
            raise ConflictError("That message changed while you were guessing.")
        logger.info(f"G:{game.id} P:{player.user_id} - wrong guess on message {target.id}, strike {outcome.strikes}.")
        if outcome.is_lost:
            logger.info(f"G:{game.id} - message {target.id} lost after {outcome.strikes} strikes.")

    db.refresh(target)
    db.refresh(player)
    player.consecutive_correct_guesses = outcome.guesser_consecutive
    game.team_consecutive_correct = outcome.team_consecutive_correct
    game.fever_mode_remaining = outcome.fever_mode_remaining

    if outcome.is_match:
        _advance_after_resolution(db, game, messages, now)
    elif target.is_solved:
        # A lost word leaves the free-for-all timer running
        if machine.select_target_message(messages) is None:
            machine.complete_game(game)

    result = ActionResult(
        success=True,
        action_type=ActionType.SOLVE_ATTEMPT,
        is_match=outcome.is_match,
        similarity=outcome.similarity,
        distribution=outcome.distribution,
        message_id=target.id,
        game_status=game.status,
    )
    db.flush()
    events = [
        _message_event("message_updated", target),
        _players_event(crud_game.get_players(db, game.id)),
        _game_event(game),
    ]
    return result, events


def _check_ai_hint_quota(db: Session, game, player, client_ip, now) -> None:
    used = crud_hint_request.count_for_player_in_game(db, game.id, player.user_id)
    if used >= settings.AI_HINTS_PER_PLAYER_PER_GAME:
        raise RateLimitError(f"You have used all {settings.AI_HINTS_PER_PLAYER_PER_GAME} AI hints for this game.", scope="player")
    if client_ip and crud_hint_request.count_for_ip_on_day(db, client_ip, now.date()) >= settings.AI_HINTS_PER_IP_PER_DAY:
        raise RateLimitError("Daily AI hint limit reached for your network.", scope="ip")


def _get_hint(db: Session, game, player, payload, now, client_ip) -> Tuple[ActionResult, List[GameEvent]]:
    target, messages = _active_target(db, game, _target_id(payload))
    machine.require_target_turn(game, target, player.user_id, _author_has_left(db, game, target), now)
    new_level = machine.next_hint_level(target.hint_level)

    ai_hint = None
    if new_level == settings.MAX_HINT_LEVEL:
        _check_ai_hint_quota(db, game, player, client_ip, now)
        text_messages = [m for m in messages if m.type == MessageType.TEXT.value]
        position = text_messages.index(target)
        context = text_messages[position - 1].content if position > 0 else None
        ai_hint = hint_provider.generate_hint(target.content, context)
        if ai_hint is None:
            logger.warning(f"G:{game.id} P:{player.user_id} - AI hint unavailable for message {target.id}, advancing tier without a clue.")
        crud_hint_request.log_hint_request(
            db,
            game_id=game.id,
            user_id=player.user_id,
            message_id=target.id,
            client_ip=client_ip,
            day=now.date(),
            provider_succeeded=ai_hint is not None,
        )

    cipher_text = generate_cipher(target.content, new_level, previous_cipher=target.cipher_text)
    if not crud_game.advance_hint(db, target.id, target.hint_level, new_level, cipher_text, ai_hint):
        raise ConflictError("Someone else already took that hint.")
    db.refresh(target)

    logger.info(f"G:{game.id} P:{player.user_id} - hint level {new_level} on message {target.id}.")
    result = ActionResult(
        success=True,
        action_type=ActionType.GET_HINT,
        message=None if ai_hint or new_level < settings.MAX_HINT_LEVEL else "Hint text is unavailable right now.",
        hint_level=target.hint_level,
        cipher_text=target.cipher_text,
        ai_hint=target.ai_hint,
        message_id=target.id,
        game_status=game.status,
    )
    return result, [_message_event("message_updated", target)]


def _leave_game(db: Session, game, player, payload, now, client_ip) -> Tuple[ActionResult, List[GameEvent]]:
    if player.has_left:
        return ActionResult(success=True, action_type=ActionType.LEAVE_GAME, message="Already left.", game_status=game.status), []

    players = crud_game.get_players(db, game.id)
    active_before = machine.active_player_ids(players)
    player.has_left = True
    active_after = [uid for uid in active_before if uid != player.user_id]

    if game.current_turn_user_id == player.user_id:
        successor = next_turn(active_before, player.user_id)
        game.current_turn_user_id = successor if successor != player.user_id else None

    # The leaver no longer blocks a pending proposal
    if machine.is_texting(game) and machine.is_proposal_open(game):
        if machine.all_confirmed(game.solve_proposal_confirmations, active_after):
            _start_solving(db, game, now)

    logger.info(f"G:{game.id} P:{player.user_id} - left the game. Turn: {game.current_turn_user_id}")
    db.flush()
    events = [_players_event(crud_game.get_players(db, game.id)), _game_event(game)]
    return ActionResult(success=True, action_type=ActionType.LEAVE_GAME, game_status=game.status), events


_HANDLERS = {
    ActionType.SEND_MESSAGE: _send_message,
    ActionType.PROPOSE_SOLVE: _propose_solve,
    ActionType.DENY_SOLVE: _deny_solve,
    ActionType.CONFIRM_SOLVE: _confirm_solve,
    ActionType.SOLVE_ATTEMPT: _solve_attempt,
    ActionType.GET_HINT: _get_hint,
    ActionType.LEAVE_GAME: _leave_game,
}


def _failure(action_type: ActionType, error: GameActionError) -> ActionResult:
    return ActionResult(
        success=False,
        action_type=action_type,
        message=error.message,
        error=error.kind,
        rate_limit_scope=getattr(error, "scope", None),
    )


def process_action(
    db: Session,
    game_id: str,
    user_id: str,
    action_type: ActionType,
    payload: Optional[Dict[str, Any]] = None,
    client_ip: Optional[str] = None,
    now=None,
) -> Tuple[ActionResult, List[GameEvent]]:
    """
    Applies one player action. Returns the result for the acting player and the
    change events to broadcast. Rejections never raise; they come back as a
    failed ActionResult and leave no partial writes behind.
    """
    now = now or machine.utcnow()
    payload = payload or {}
    action_type = ActionType(action_type)
    events: List[GameEvent] = []

    try:
        game = crud_game.get_game(db, game_id, for_update=True)
        if game is None:
            raise ValidationError("Game not found.")

        deadline_events = _settle_deadlines(db, game, now)
        if deadline_events:
            # Persist the elapsed deadline even if the action itself is rejected
            db.commit()
            events.extend(deadline_events)
            game = crud_game.get_game(db, game_id, for_update=True)

        player = crud_game.get_player(db, game.id, user_id)
        if player is None or (player.has_left and action_type != ActionType.LEAVE_GAME):
            raise AuthorizationError("You are not playing in this game.")

        result, action_events = _HANDLERS[action_type](db, game, player, payload, now, client_ip)
        db.commit()
        events.extend(action_events)
        return result, events

    except GameActionError as e:
        db.rollback()
        logger.warning(f"G:{game_id} P:{user_id} - {action_type.value} rejected ({e.kind.value}): {e.message}")
        return _failure(action_type, e), events
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"G:{game_id} P:{user_id} - {action_type.value} lost a race on insert: {e}")
        return _failure(action_type, ConflictError("Another request changed this game at the same time. Please retry.")), events
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"G:{game_id} P:{user_id} - storage failure during {action_type.value}: {e}", extra={"game_id": game_id})
        return _failure(action_type, DependencyFailure("Could not save your action. Please retry.")), events


# --- Game lifecycle ----------------------------------------------------------

def create_game(db: Session, creator_id: str, mode: GameMode = GameMode.FREE, max_messages: Optional[int] = None, now=None):
    now = now or machine.utcnow()
    mode = GameMode(mode)
    if mode == GameMode.HUNDRED_TEXT:
        max_messages = settings.HUNDRED_TEXT_MAX_MESSAGES
    game = crud_game.create_game(db, creator_id, mode.value, max_messages, now)
    db.commit()
    db.refresh(game)
    return game


def join_game(db: Session, game_id: str, user_id: str, now=None) -> Tuple[Any, List[GameEvent]]:
    """Idempotent. Raises GameActionError when the game cannot take the player."""
    now = now or machine.utcnow()
    game = crud_game.get_game(db, game_id, for_update=True)
    if game is None:
        raise ValidationError("Game not found.")

    player = crud_game.get_player(db, game.id, user_id)
    if player is not None and not player.has_left:
        return game, []

    try:
        machine.require_status(game, TEXTING, "join")
        if crud_game.count_active_players(db, game.id) >= settings.MAX_PLAYERS:
            raise ConflictError("This game is full.")

        if player is None:
            crud_game.add_player(db, game.id, user_id, now)
        else:
            player.has_left = False
        if game.current_turn_user_id is None:
            game.current_turn_user_id = user_id
        db.commit()
    except GameActionError:
        db.rollback()
        raise

    db.refresh(game)
    logger.info(f"G:{game.id} P:{user_id} - joined.")
    return game, [_players_event(crud_game.get_players(db, game.id)), _game_event(game)]


def get_state(db: Session, game_id: str, viewer_id: str, now=None) -> Tuple[GameStateResponse, List[GameEvent]]:
    now = now or machine.utcnow()
    game = crud_game.get_game(db, game_id, for_update=True)
    if game is None:
        raise ValidationError("Game not found.")
    if crud_game.get_player(db, game.id, viewer_id) is None:
        db.rollback()
        raise AuthorizationError("You are not playing in this game.")

    events = _settle_deadlines(db, game, now)
    db.commit()
    return build_game_state(db, game, viewer_id, now), events


def sweep_due_deadlines(db: Session, now=None) -> List[Tuple[str, List[GameEvent]]]:
    """Finalizes elapsed proposal windows nobody is acting on. Returns events per game id."""
    now = now or machine.utcnow()
    published = []
    for candidate in crud_game.get_games_with_open_proposal(db):
        if not machine.proposal_window_elapsed(candidate, now):
            continue
        game = crud_game.get_game(db, candidate.id, for_update=True)
        events = _settle_deadlines(db, game, now)
        db.commit()
        if events:
            published.append((game.id, events))
    return published
