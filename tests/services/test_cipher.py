# tests/services/test_cipher.py
import random
import pytest
from app.services.cipher import CIPHER_CHARS, generate_cipher, reveal_indices, revealed_count

def _visible_positions(content: str, cipher: str):
    return {i for i, (c, o) in enumerate(zip(content, cipher)) if c != " " and c == o}

@pytest.mark.parametrize("content", ["a", "hello", "hello world", "pizza at noon", "x y"])
@pytest.mark.parametrize("level", [0, 1, 2, 3])
def test_cipher_keeps_length_and_spaces(content, level):
    cipher = generate_cipher(content, level)
    assert len(cipher) == len(content)
    for original, rendered in zip(content, cipher):
        if original == " ":
            assert rendered == " "
        else:
            assert rendered in CIPHER_CHARS or rendered == original

def test_level_zero_hides_every_character():
    rng = random.Random(7)
    for _ in range(50):
        assert _visible_positions("hello world", generate_cipher("hello world", 0, rng=rng)) == set()

def test_level_one_reveals_only_the_first_character():
    content = " spaced out"
    cipher = generate_cipher(content, 1, rng=random.Random(3))
    assert _visible_positions(content, cipher) == {1}
    assert cipher[1] == "s"

def test_level_two_short_word_reveals_only_first():
    # 40% of 3 rounds down to 1
    assert revealed_count("ABC", 2) == 1
    for seed in range(20):
        assert _visible_positions("ABC", generate_cipher("ABC", 2, rng=random.Random(seed))) == {0}

def test_level_two_reveals_forty_percent():
    content = "watermelon" # 10 non-space characters
    assert revealed_count(content, 2) == 4
    cipher = generate_cipher(content, 2, rng=random.Random(11))
    visible = _visible_positions(content, cipher)
    assert len(visible) == 4
    assert 0 in visible

def test_revealed_count_tiers():
    assert revealed_count("", 2) == 0
    assert revealed_count("   ", 1) == 0
    assert revealed_count("hello", 0) == 0
    assert revealed_count("hello", 1) == 1
    assert revealed_count("hello world", 2) == 4 # 10 letters
    assert revealed_count("hello world", 3) == revealed_count("hello world", 2)

def test_reveals_accumulate_across_levels():
    content = "strawberry jam"
    level_two = generate_cipher(content, 2, rng=random.Random(5))
    level_three = generate_cipher(content, 3, previous_cipher=level_two, rng=random.Random(99))
    assert _visible_positions(content, level_two) <= _visible_positions(content, level_three)

def test_reveal_indices_keeps_prior_reveals():
    content = "abcdefghij"
    revealed = reveal_indices(content, 2, already_revealed={0, 7}, rng=random.Random(1))
    assert {0, 7} <= revealed
    assert len(revealed) == 4
