# app/services/cipher.py
"""
Obfuscated renderings of message content, revealed progressively by hint tier.

Level 0: every non-space character is replaced.
Level 1: the first non-space character is revealed.
Level 2: the first character plus a random subset, 40% of the non-space
         characters in total (rounded down, never fewer than the first).
Level 3: same positions as level 2; its value is the AI clue, stored elsewhere.

Spaces are always kept verbatim and the output always has the content's length.
"""
import random
from typing import Iterable, List, Optional, Set

CIPHER_CHARS = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789!@#$%^&*"
LEVEL_2_REVEAL_FRACTION = 0.4

_default_rng = random.Random()


def _non_space_indices(content: str) -> List[int]:
    return [i for i, char in enumerate(content) if char != " "]


def revealed_count(content: str, level: int) -> int:
    """Number of non-space characters guaranteed to be visible at the given tier."""
    non_space_count = len(_non_space_indices(content))
    if non_space_count == 0 or level < 1:
        return 0
    count = 1
    if level >= 2:
        count = max(count, int(non_space_count * LEVEL_2_REVEAL_FRACTION))
    return count


def reveal_indices(
    content: str,
    level: int,
    already_revealed: Iterable[int] = (),
    rng: Optional[random.Random] = None,
) -> Set[int]:
    """
    Picks the positions to show at `level`. Positions in `already_revealed` are kept
    so reveals accumulate across tiers instead of being re-rolled.
    """
    rng = rng or _default_rng
    indices = _non_space_indices(content)
    target = revealed_count(content, level)
    if target == 0:
        return set()

    candidates = set(indices)
    revealed = {i for i in already_revealed if i in candidates}
    revealed.add(indices[0])

    remaining = [i for i in indices if i not in revealed]
    rng.shuffle(remaining) # Fisher-Yates
    for index in remaining:
        if len(revealed) >= target:
            break
        revealed.add(index)
    return revealed


def previously_revealed(content: str, previous_cipher: Optional[str]) -> Set[int]:
    """Positions a prior cipher already shows. Substitutes never equal the original."""
    if not previous_cipher or len(previous_cipher) != len(content):
        return set()
    return {i for i in _non_space_indices(content) if previous_cipher[i] == content[i]}


def _random_substitute(original: str, rng: random.Random) -> str:
    while True:
        candidate = rng.choice(CIPHER_CHARS)
        if candidate != original:
            return candidate


def generate_cipher(
    content: str,
    hint_level: int,
    previous_cipher: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> str:
    rng = rng or _default_rng
    already = previously_revealed(content, previous_cipher) if hint_level >= 1 else set()
    revealed = reveal_indices(content, hint_level, already_revealed=already, rng=rng)

    result = []
    for i, char in enumerate(content):
        if char == " ":
            result.append(" ")
        elif i in revealed:
            result.append(char)
        else:
            result.append(_random_substitute(char, rng))
    return "".join(result)
