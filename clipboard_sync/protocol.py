"""
Core data types for clipboard sync.

This module defines the persisted records (Session, VersionRecord), the
read projections handed to callers, and the update intent enum. Only
ciphertext ever appears in these types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)):
        # Epoch milliseconds, as browsers send them
        return datetime.fromtimestamp(value / 1000.0, tz=UTC)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _format_ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# =============================================================================
# Update Intent
# =============================================================================


class UpdateMode(Enum):
    """How an update lands in the ledger."""

    AMEND = "amend"  # Patch the record at last_version in place
    APPEND = "append"  # Start a new checkpoint at last_version + 1

    @classmethod
    def coerce(cls, value: UpdateMode | bool | str) -> UpdateMode:
        """Normalize the legacy replace_latest flag or a wire string."""
        if isinstance(value, UpdateMode):
            return value
        if isinstance(value, bool):
            return cls.AMEND if value else cls.APPEND
        return cls(value)


# =============================================================================
# Persisted Records
# =============================================================================


@dataclass
class Session:
    """A shareable clipboard channel.

    Invariants maintained by the ledger:
    - last_version == max(version) over surviving records, or 0
    - latest_ciphertext is the ciphertext at last_version, or ""
    - at most one record exists while allow_history is False
    """

    code: str
    link_token: str
    allow_history: bool = True
    expires_at: datetime | None = None  # Passive; read only by external cleanup
    last_version: int = 0
    latest_ciphertext: str = ""
    current_lang_hint: str | None = None
    auto_format_pref: bool | None = None

    def info(self) -> SessionInfo:
        """Metadata projection without any ciphertext."""
        return SessionInfo(
            code=self.code,
            link_token=self.link_token,
            allow_history=self.allow_history,
            has_latest=bool(self.latest_ciphertext),
            lang_hint=self.current_lang_hint,
            auto_format_pref=self.auto_format_pref,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code,
            "link_token": self.link_token,
            "allow_history": self.allow_history,
            "expires_at": _format_ts(self.expires_at),
            "last_version": self.last_version,
            "latest_ciphertext": self.latest_ciphertext,
            "current_lang_hint": self.current_lang_hint,
            "auto_format_pref": self.auto_format_pref,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        """Create from dictionary."""
        return cls(
            code=data["code"],
            link_token=data["link_token"],
            allow_history=bool(data.get("allow_history", True)),
            expires_at=parse_timestamp(data.get("expires_at")),
            last_version=int(data.get("last_version", 0)),
            latest_ciphertext=data.get("latest_ciphertext") or "",
            current_lang_hint=data.get("current_lang_hint"),
            auto_format_pref=data.get("auto_format_pref"),
        )


@dataclass
class VersionRecord:
    """One ciphertext checkpoint in a session's ledger."""

    session_code: str
    version: int
    ciphertext: str
    created_at: datetime
    updated_at: datetime
    lang_hint: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "session_code": self.session_code,
            "version": self.version,
            "ciphertext": self.ciphertext,
            "created_at": _format_ts(self.created_at),
            "updated_at": _format_ts(self.updated_at),
            "lang_hint": self.lang_hint,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VersionRecord:
        """Create from dictionary."""
        created = parse_timestamp(data.get("created_at")) or utc_now()
        return cls(
            session_code=data["session_code"],
            version=int(data["version"]),
            ciphertext=data["ciphertext"],
            created_at=created,
            updated_at=parse_timestamp(data.get("updated_at")) or created,
            lang_hint=data.get("lang_hint"),
        )


# =============================================================================
# Projections and Results
# =============================================================================


@dataclass(frozen=True)
class CreatedSession:
    """Identifiers returned by create_session."""

    code: str
    link_token: str

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "link_token": self.link_token}


@dataclass(frozen=True)
class SessionInfo:
    """Session metadata as exposed to code and link-token holders."""

    code: str
    link_token: str
    allow_history: bool
    has_latest: bool
    lang_hint: str | None = None
    auto_format_pref: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "link_token": self.link_token,
            "allow_history": self.allow_history,
            "has_latest": self.has_latest,
            "lang_hint": self.lang_hint,
            "auto_format_pref": self.auto_format_pref,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionInfo:
        return cls(
            code=data["code"],
            link_token=data["link_token"],
            allow_history=bool(data["allow_history"]),
            has_latest=bool(data.get("has_latest", False)),
            lang_hint=data.get("lang_hint"),
            auto_format_pref=data.get("auto_format_pref"),
        )


@dataclass(frozen=True)
class HistoryItem:
    """A version as carried by restore requests and client-side caches."""

    version: int
    ciphertext: str
    created_at: datetime | None = None
    lang_hint: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record: VersionRecord) -> HistoryItem:
        return cls(
            version=record.version,
            ciphertext=record.ciphertext,
            created_at=record.created_at,
            lang_hint=record.lang_hint,
            updated_at=record.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "ciphertext": self.ciphertext,
            "created_at": _format_ts(self.created_at),
            "lang_hint": self.lang_hint,
            "updated_at": _format_ts(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryItem:
        return cls(
            version=data["version"],
            ciphertext=data["ciphertext"],
            created_at=parse_timestamp(data.get("created_at")),
            lang_hint=data.get("lang_hint"),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


@dataclass(frozen=True)
class LatestCiphertext:
    """Latest payload of a session; version 0 and "" when nothing was saved yet."""

    version: int
    ciphertext: str

    @property
    def is_empty(self) -> bool:
        return self.version == 0

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "ciphertext": self.ciphertext}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LatestCiphertext:
        return cls(version=int(data["version"]), ciphertext=data.get("ciphertext") or "")


EMPTY_LATEST = LatestCiphertext(version=0, ciphertext="")


@dataclass(frozen=True)
class UpdateResult:
    """Version that holds the payload after update_clipboard."""

    version: int
    mode: UpdateMode = UpdateMode.APPEND

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "mode": self.mode.value}


@dataclass(frozen=True)
class PatchResult:
    """Outcome of update_history_version.

    missing=True is a soft signal: the version was deleted out from under
    the editor, and the caller decides whether to abandon or restart.
    """

    ok: bool
    missing: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "missing": self.missing}


@dataclass(frozen=True)
class BroadcastHint:
    """Advisory realtime update; never authoritative."""

    room: str
    ciphertext: str
    version: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "clipboard:updated",
            "room": self.room,
            "ciphertext": self.ciphertext,
            "version": self.version,
        }
