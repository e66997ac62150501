import pytest

from tradie.services.capability_tokens import (
    CapabilityToken,
    DEFAULT_TOKEN_LENGTH,
    TOKEN_ALPHABET,
)


def test_alphabet_has_no_confusable_characters():
    for ch in "0O1Il":
        assert ch not in TOKEN_ALPHABET


def test_generate_fixed_length_from_alphabet():
    token = CapabilityToken.generate()

    assert len(token) == DEFAULT_TOKEN_LENGTH
    assert set(token) <= set(TOKEN_ALPHABET)


def test_generated_tokens_differ():
    tokens = {CapabilityToken.generate() for _ in range(200)}
    assert len(tokens) == 200


def test_generate_rejects_short_length():
    with pytest.raises(ValueError):
        CapabilityToken.generate(4)


def test_parse_round_trips_generated_token():
    token = CapabilityToken.generate()
    assert CapabilityToken.parse(f"  {token} ") == token


@pytest.mark.parametrize("raw", [None, 42, "", "short", "has spaces in it", "O0O0O0O0O0O0", "x" * 65])
def test_parse_malformed_returns_none(raw):
    assert CapabilityToken.parse(raw) is None


def test_repr_hides_value():
    token = CapabilityToken.generate()
    assert str(token) not in repr(token)
