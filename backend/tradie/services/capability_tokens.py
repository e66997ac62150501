# Overview: Capability tokens for unauthenticated quote acceptance and invoice payment links.

"""
A capability token is the only credential a client needs to view or act on
a quote/invoice from an emailed link. It is:

- drawn from a cryptographically strong source (secrets module)
- a fixed-length string over an alphabet without look-alike characters
  (no 0/O, 1/I/l), so it survives being read aloud or retyped
- independent of the document id, owner id, or anything else stored

55 symbols ** 12 characters is roughly 7.7e20 possible tokens.
"""

from __future__ import annotations

import secrets

TOKEN_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789"
DEFAULT_TOKEN_LENGTH = 12

# Accepted on lookup; anything outside this range cannot be a token we issued
MIN_TOKEN_LENGTH = 8
MAX_TOKEN_LENGTH = 64

_ALPHABET_SET = frozenset(TOKEN_ALPHABET)


class CapabilityToken(str):
    """
    Opaque bearer token for a single document.

    Subclasses str so it can be stored and compared directly, while keeping
    token parameters distinct from ids in service signatures. repr() never
    reveals the value.
    """

    __slots__ = ()

    @classmethod
    def generate(cls, length: int = DEFAULT_TOKEN_LENGTH) -> "CapabilityToken":
        if length < MIN_TOKEN_LENGTH or length > MAX_TOKEN_LENGTH:
            raise ValueError(f"token length must be between {MIN_TOKEN_LENGTH} and {MAX_TOKEN_LENGTH}")
        return cls("".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length)))

    @classmethod
    def parse(cls, raw) -> "CapabilityToken | None":
        """
        Return a token for well-formed input, None otherwise.

        Malformed input is reported exactly like an unknown token, so callers
        cannot tell "bad shape" from "not found".
        """
        if not isinstance(raw, str):
            return None
        value = raw.strip()
        if not MIN_TOKEN_LENGTH <= len(value) <= MAX_TOKEN_LENGTH:
            return None
        if not set(value) <= _ALPHABET_SET:
            return None
        return cls(value)

    def __repr__(self) -> str:
        return "CapabilityToken('***')"
