"""
Input validation for ledger and registry operations.

Everything here runs before the store is touched; failures raise
ValidationError. Ciphertext values are never echoed into error details.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from ..exceptions import ValidationError
from ..protocol import HistoryItem, UpdateMode, parse_timestamp

MAX_LANG_HINT_LENGTH = 64
# Largest value a SQLite INTEGER column holds
MAX_VERSION = 2**63 - 1


def require_code(code: Any, field: str = "code") -> str:
    if not isinstance(code, str) or not code.strip():
        raise ValidationError(field, "must be a non-empty string")
    return code.strip()


def require_ciphertext(ciphertext: Any) -> str:
    if not isinstance(ciphertext, str):
        raise ValidationError("ciphertext", f"must be a string, got {type(ciphertext).__name__}")
    return ciphertext


def require_version(version: Any, field: str = "version") -> int:
    # bool is an int subclass; True must not address version 1
    if isinstance(version, bool) or not isinstance(version, int):
        raise ValidationError(field, "must be an integer", repr(version))
    if version <= 0:
        raise ValidationError(field, "must be positive", str(version))
    if version > MAX_VERSION:
        raise ValidationError(field, f"must not exceed {MAX_VERSION}", str(version))
    return version


def require_versions(versions: Any) -> list[int]:
    if isinstance(versions, (str, bytes)) or not isinstance(versions, Iterable):
        raise ValidationError("versions", "must be a list of integers")
    return [require_version(v, "versions") for v in versions]


def optional_lang_hint(lang_hint: Any) -> str | None:
    """Normalize a language hint; None and "" both mean "not supplied"."""
    if lang_hint is None or lang_hint == "":
        return None
    if not isinstance(lang_hint, str):
        raise ValidationError("lang_hint", "must be a string")
    if len(lang_hint) > MAX_LANG_HINT_LENGTH:
        raise ValidationError("lang_hint", f"longer than {MAX_LANG_HINT_LENGTH} characters")
    return lang_hint


def optional_flag(value: Any, field: str) -> bool | None:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(field, "must be a boolean", repr(value))
    return value


def require_mode(value: Any) -> UpdateMode:
    try:
        return UpdateMode.coerce(value)
    except (ValueError, TypeError):
        raise ValidationError(
            "replace_latest", "must be a boolean or 'amend'/'append'", repr(value)
        ) from None


def optional_expected_version(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_VERSION:
        raise ValidationError("expected_version", "must be a non-negative integer", repr(value))
    return value


def require_history_items(items: Any) -> list[HistoryItem]:
    """Validate restore items given as HistoryItem objects or wire dicts."""
    if isinstance(items, (str, bytes, dict)) or not isinstance(items, Iterable):
        raise ValidationError("items", "must be a list of history items")

    validated: list[HistoryItem] = []
    for index, item in enumerate(items):
        if isinstance(item, HistoryItem):
            raw: dict[str, Any] = {
                "version": item.version,
                "ciphertext": item.ciphertext,
                "created_at": item.created_at,
                "lang_hint": item.lang_hint,
            }
        elif isinstance(item, dict):
            raw = item
        else:
            raise ValidationError(f"items[{index}]", "must be an object")

        version = require_version(raw.get("version"), f"items[{index}].version")
        ciphertext = raw.get("ciphertext")
        if not isinstance(ciphertext, str):
            raise ValidationError(f"items[{index}].ciphertext", "must be a string")
        try:
            created_at = parse_timestamp(raw.get("created_at"))
        except (TypeError, ValueError, OverflowError, OSError):
            raise ValidationError(
                f"items[{index}].created_at", "must be an ISO timestamp or epoch ms"
            ) from None

        validated.append(
            HistoryItem(
                version=version,
                ciphertext=ciphertext,
                created_at=created_at,
                lang_hint=optional_lang_hint(raw.get("lang_hint")),
            )
        )
    return validated
