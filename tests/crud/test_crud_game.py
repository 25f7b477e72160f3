# tests/crud/test_crud_game.py
from datetime import datetime, timezone
from sqlalchemy.orm import Session

from app.crud import crud_game, crud_hint_request
from app.schemas.game import Message

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

def _game_with_message(db: Session, content: str = "hello"):
    game = crud_game.create_game(db, "u1", "free", None, NOW)
    message = crud_game.create_message(db, game.id, "u1", content, "x" * len(content), NOW)
    db.commit()
    return game, message

def test_create_game_adds_creator_as_first_player(db_session: Session):
    game = crud_game.create_game(db_session, "creator", "free", 5, NOW)
    db_session.commit()

    assert game.id is not None
    assert game.status == "lobby"
    assert game.current_turn_user_id == "creator"
    assert game.solve_proposal_confirmations == []
    players = crud_game.get_players(db_session, game.id)
    assert [p.user_id for p in players] == ["creator"]

def test_display_ids_are_sequential(db_session: Session):
    first = crud_game.create_game(db_session, "a", "free", None, NOW)
    second = crud_game.create_game(db_session, "b", "free", None, NOW)
    assert second.display_id == first.display_id + 1

def test_players_are_ordered_by_join_time(db_session: Session):
    game = crud_game.create_game(db_session, "u1", "free", None, datetime(2025, 1, 1, 10, tzinfo=timezone.utc))
    crud_game.add_player(db_session, game.id, "u3", datetime(2025, 1, 1, 12, tzinfo=timezone.utc))
    crud_game.add_player(db_session, game.id, "u2", datetime(2025, 1, 1, 11, tzinfo=timezone.utc))
    db_session.commit()

    assert [p.user_id for p in crud_game.get_players(db_session, game.id)] == ["u1", "u2", "u3"]
    crud_game.get_player(db_session, game.id, "u2").has_left = True
    db_session.commit()
    assert crud_game.count_active_players(db_session, game.id) == 2

def test_mark_message_solved_only_succeeds_once(db_session: Session):
    game, message = _game_with_message(db_session)

    assert crud_game.mark_message_solved(db_session, message.id, "u2", 7, 2) is True
    assert crud_game.mark_message_solved(db_session, message.id, "u3", 7, 2) is False
    db_session.commit()

    stored = db_session.query(Message).filter(Message.id == message.id).one()
    db_session.refresh(stored)
    assert stored.solved_by == "u2"
    assert (stored.winner_points, stored.author_points) == (7, 2)

def test_record_strike_requires_expected_count(db_session: Session):
    game, message = _game_with_message(db_session)

    assert crud_game.record_strike(db_session, message.id, expected_strikes=0)
    # A stale reader still thinks there are no strikes
    assert not crud_game.record_strike(db_session, message.id, expected_strikes=0)
    assert crud_game.record_strike(db_session, message.id, expected_strikes=1)
    assert crud_game.record_strike(db_session, message.id, expected_strikes=2)
    db_session.commit()

    db_session.refresh(message)
    assert message.strikes == 3
    assert message.is_solved
    assert message.solved_by is None
    assert message.winner_points == 0
    # Lost words cannot be solved any more
    assert not crud_game.mark_message_solved(db_session, message.id, "u2", 1, 1)

def test_advance_hint_compare_and_swap(db_session: Session):
    game, message = _game_with_message(db_session)

    assert crud_game.advance_hint(db_session, message.id, 0, 1, "hxxxx")
    assert not crud_game.advance_hint(db_session, message.id, 0, 1, "hyyyy")
    db_session.commit()
    db_session.refresh(message)
    assert (message.hint_level, message.cipher_text, message.ai_hint) == (1, "hxxxx", None)

def test_add_to_player_score_accumulates(db_session: Session):
    game = crud_game.create_game(db_session, "u1", "free", None, NOW)
    crud_game.add_to_player_score(db_session, game.id, "u1", 10)
    crud_game.add_to_player_score(db_session, game.id, "u1", 5)
    crud_game.add_to_player_score(db_session, game.id, "u1", 0)
    db_session.commit()

    assert crud_game.get_players(db_session, game.id)[0].score == 15

def test_message_lookup_by_client_id(db_session: Session):
    game = crud_game.create_game(db_session, "u1", "free", None, NOW)
    created = crud_game.create_message(db_session, game.id, "u1", "hi", "xy", NOW, client_message_id="abc")
    db_session.commit()

    assert crud_game.get_message_by_client_id(db_session, game.id, "abc").id == created.id
    assert crud_game.get_message_by_client_id(db_session, game.id, "zzz") is None
    assert crud_game.count_text_messages(db_session, game.id) == 1

def test_hint_request_counters(db_session: Session):
    game, message = _game_with_message(db_session)
    day = NOW.date()
    crud_hint_request.log_hint_request(db_session, game.id, "u1", message.id, "1.2.3.4", day, True)
    crud_hint_request.log_hint_request(db_session, game.id, "u2", message.id, "1.2.3.4", day, False)
    db_session.commit()

    assert crud_hint_request.count_for_player_in_game(db_session, game.id, "u1") == 1
    assert crud_hint_request.count_for_ip_on_day(db_session, "1.2.3.4", day) == 2
    assert crud_hint_request.count_for_ip_on_day(db_session, "5.6.7.8", day) == 0
