# app/services/turn_rotation.py
from typing import Optional, Sequence


def next_turn(active_player_ids: Sequence[str], current_user_id: str) -> Optional[str]:
    """
    Next player after `current_user_id`, wrapping around.
    The caller passes players ordered by joined_at with left players already removed.
    """
    if not active_player_ids:
        return None
    try:
        current_index = list(active_player_ids).index(current_user_id)
    except ValueError:
        return None
    return active_player_ids[(current_index + 1) % len(active_player_ids)]
