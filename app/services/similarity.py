# app/services/similarity.py
"""Fuzzy matching of solve guesses against the hidden message content."""

# A guess counts as a correct solve at or above this similarity.
MATCH_THRESHOLD = 0.80


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance with unit cost insertion, deletion and substitution."""
    if len(a) < len(b):
        a, b = b, a
    previous_row = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current_row = [i]
        for j, char_b in enumerate(b, start=1):
            substitution_cost = 0 if char_a == char_b else 1
            current_row.append(min(
                previous_row[j] + 1,  # deletion
                current_row[j - 1] + 1,  # insertion
                previous_row[j - 1] + substitution_cost,  # substitution
            ))
        previous_row = current_row
    return previous_row[-1]


def similarity(guess: str, target: str) -> float:
    """Returns a score in [0.0, 1.0]; case-insensitive and whitespace-trimmed."""
    a = (guess or "").strip().lower()
    b = (target or "").strip().lower()

    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    distance = levenshtein_distance(a, b)
    return 1.0 - distance / max(len(a), len(b))


def is_match(guess: str, target: str) -> bool:
    return similarity(guess, target) >= MATCH_THRESHOLD
