# tests/services/test_turn_rotation.py
from app.services.turn_rotation import next_turn

def test_next_turn_advances_in_join_order():
    assert next_turn(["u1", "u2", "u3"], "u1") == "u2"
    assert next_turn(["u1", "u2", "u3"], "u2") == "u3"

def test_next_turn_wraps_around():
    assert next_turn(["u1", "u2", "u3"], "u3") == "u1"

def test_single_player_keeps_the_turn():
    assert next_turn(["u1"], "u1") == "u1"

def test_empty_or_unknown_player_has_no_next_turn():
    assert next_turn([], "u1") is None
    assert next_turn(["u1", "u2"], "u99") is None
