# app/services/scoring.py
"""
Message valuation and point distribution.

These functions are the single implementation of the scoring rules. Clients may
call the same rules for optimistic display, but only the action handler persists
their results.
"""
import math
from fractions import Fraction
from typing import Tuple

from app.core.config import settings
from app.models.enums import PointKind
from app.models.game import PointDistribution

BASE_MESSAGE_VALUE = 10

SELF_RESCUE_SHARE = Fraction(1, 2)
STEAL_WINNER_SHARE = Fraction(3, 4)
STEAL_AUTHOR_SHARE = Fraction(1, 4)

# Percent of the message value consumed by each hint tier (cumulative 10 / 20 / 60).
HINT_TIER_COST_PERCENT = {1: 10, 2: 10, 3: 40}
# Subtracted when the guess was accepted but not an exact match.
ACCURACY_PENALTY_PERCENT = 10

# consecutive correct guesses (after this solve) -> multiplier
STREAK_MULTIPLIERS = ((4, 2.0), (3, 1.5), (2, 1.2))
FEVER_MULTIPLIER = 2.0


def message_value(content: str) -> int:
    """10 plus one point per character, spaces included."""
    return BASE_MESSAGE_VALUE + len(content)


def hint_cost_percent(hint_level: int) -> int:
    return sum(cost for tier, cost in HINT_TIER_COST_PERCENT.items() if tier <= hint_level)


def adjusted_base_value(value: int, hint_level: int, match_similarity: float) -> int:
    deduction = hint_cost_percent(hint_level)
    if match_similarity < 1.0:
        deduction += ACCURACY_PENALTY_PERCENT
    return max(0, (value * (100 - deduction)) // 100)


def streak_multiplier(consecutive_correct: int) -> float:
    for minimum, multiplier in STREAK_MULTIPLIERS:
        if consecutive_correct >= minimum:
            return multiplier
    return 1.0


def combined_multiplier(consecutive_correct: int, fever_mode_remaining: int) -> float:
    multiplier = streak_multiplier(consecutive_correct)
    if fever_mode_remaining > 0:
        multiplier *= FEVER_MULTIPLIER
    return multiplier


def point_distribution(word_value: int, guesser_id: str, author_id: str, multiplier: float = 1) -> PointDistribution:
    """
    Splits a solved word's value. Each share is floored on its own, so a steal can
    total up to one point less than the nominal value (e.g. 10 -> 7 + 2).
    """
    effective = Fraction(word_value) * Fraction(str(multiplier))

    if guesser_id == author_id:
        points = math.floor(effective * SELF_RESCUE_SHARE)
        return PointDistribution(
            total_points=points,
            winner_points=points,
            author_points=0,
            kind=PointKind.SELF_RESCUE,
        )

    winner_points = math.floor(effective * STEAL_WINNER_SHARE)
    author_points = math.floor(effective * STEAL_AUTHOR_SHARE)
    return PointDistribution(
        total_points=winner_points + author_points,
        winner_points=winner_points,
        author_points=author_points,
        kind=PointKind.STEAL,
    )


def award_for_solve(
    content: str,
    hint_level: int,
    match_similarity: float,
    guesser_id: str,
    author_id: str,
    guesser_consecutive_after: int,
    fever_mode_remaining: int,
) -> PointDistribution:
    base = adjusted_base_value(message_value(content), hint_level, match_similarity)
    multiplier = combined_multiplier(guesser_consecutive_after, fever_mode_remaining)
    return point_distribution(base, guesser_id, author_id, multiplier)


def advance_team_bonus(
    team_consecutive_correct: int,
    fever_mode_remaining: int,
    threshold: int = settings.FEVER_STREAK_THRESHOLD,
    fever_solves: int = settings.FEVER_MODE_SOLVES,
) -> Tuple[int, int]:
    """
    Team counters after a correct solve. An active fever loses one use first; an
    empty fever (re-)arms whenever the streak is at or above the threshold.
    """
    new_consecutive = team_consecutive_correct + 1
    new_fever = max(0, fever_mode_remaining - 1)
    if new_fever == 0 and new_consecutive >= threshold:
        new_fever = fever_solves
    return new_consecutive, new_fever
