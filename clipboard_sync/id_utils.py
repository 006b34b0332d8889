"""Identifier generation and parsing for clipboard sessions.

Centralizes the identifier format so callers never construct codes,
link tokens or shared secrets by hand.

Session code: 5 characters from [0-9A-Za-z], typed by humans.
Link token: 16 characters from the same alphabet, embedded in share links.
Shared secret: "{code}:{link_token}", derived client-side only.
"""

from __future__ import annotations

import secrets
import string

ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase

DEFAULT_CODE_LENGTH = 5
DEFAULT_TOKEN_LENGTH = 16


def _random_string(length: int) -> str:
    if length <= 0:
        raise ValueError(f"Identifier length must be positive: {length}")
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def generate_session_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    """Generate a short human-typable session code."""
    return _random_string(length)


def generate_link_token(length: int = DEFAULT_TOKEN_LENGTH) -> str:
    """Generate a capability link token."""
    return _random_string(length)


def is_valid_identifier(value: object, length: int | None = None) -> bool:
    """Check that a value looks like a code or token from this module."""
    if not isinstance(value, str) or not value:
        return False
    if length is not None and len(value) != length:
        return False
    return all(ch in ALPHABET for ch in value)


def derive_secret(code: str, link_token: str) -> str:
    """Build the shared encryption secret from both session identifiers."""
    return f"{code}:{link_token}"


def build_share_link(base_url: str, link_token: str) -> str:
    """Build the shareable join link for a session."""
    return f"{base_url.rstrip('/')}/join/{link_token}"


def parse_link_token(link_or_token: str) -> str:
    """Extract the link token from a share link or return a bare token.

    Accepts "https://host/join/<token>", "/join/<token>" or "<token>".

    Raises ValueError on empty input.
    """
    candidate = link_or_token.strip().rstrip("/")
    if not candidate:
        raise ValueError("Empty link")
    token = candidate.rsplit("/", 1)[-1]
    # Drop query strings or fragments appended by chat apps
    for sep in ("?", "#"):
        token = token.split(sep, 1)[0]
    if not token:
        raise ValueError(f"Malformed link: {link_or_token}")
    return token
