"""
In-memory persistence backend.

Process-local store for tests and single-node development. A transaction
works on a copy of the state and publishes it only on success, so a
failed ledger operation leaves nothing half-applied.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from typing import Any

from ..exceptions import SessionExistsError, StorageIOError
from ..protocol import Session, VersionRecord
from .base import (
    SESSION_PATCHABLE_FIELDS,
    VERSION_PATCHABLE_FIELDS,
    ClipboardStore,
    StoreTransaction,
)

logger = logging.getLogger(__name__)


@dataclass
class _MemoryState:
    sessions: dict[str, Session] = field(default_factory=dict)
    link_tokens: dict[str, str] = field(default_factory=dict)  # link_token -> code
    history: dict[str, dict[int, VersionRecord]] = field(default_factory=dict)


class MemoryTransaction(StoreTransaction):
    """Transaction over a private working copy of the store state."""

    def __init__(self, state: _MemoryState) -> None:
        self.state = state
        self._owned: set[str] = set()

    def _writable_versions(self, code: str) -> dict[int, VersionRecord]:
        # Per-session version maps are shared with the committed state until first write
        versions = self.state.history.get(code, {})
        if code not in self._owned:
            versions = self.state.history[code] = dict(versions)
            self._owned.add(code)
        return versions

    async def get_session_by_code(self, code: str) -> Session | None:
        session = self.state.sessions.get(code)
        return replace(session) if session else None

    async def get_session_by_link_token(self, link_token: str) -> Session | None:
        code = self.state.link_tokens.get(link_token)
        return await self.get_session_by_code(code) if code else None

    async def insert_session(self, session: Session) -> None:
        if session.code in self.state.sessions or session.link_token in self.state.link_tokens:
            raise SessionExistsError(session.code)
        self.state.sessions[session.code] = replace(session)
        self.state.link_tokens[session.link_token] = session.code
        self._writable_versions(session.code)

    async def update_session(self, code: str, /, **fields: Any) -> None:
        unknown = set(fields) - SESSION_PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch session fields: {sorted(unknown)}")
        session = self.state.sessions.get(code)
        if session is None:
            return
        self.state.sessions[code] = replace(session, **fields)

    async def get_version(self, code: str, version: int) -> VersionRecord | None:
        record = self.state.history.get(code, {}).get(version)
        return replace(record) if record else None

    async def insert_version(self, record: VersionRecord) -> None:
        if record.session_code not in self.state.sessions:
            raise StorageIOError(
                "insert_version",
                cause=LookupError(f"unknown session {record.session_code}"),
            )
        versions = self._writable_versions(record.session_code)
        if record.version in versions:
            raise StorageIOError(
                "insert_version",
                cause=KeyError(f"duplicate version {record.version}"),
            )
        versions[record.version] = replace(record)

    async def update_version(self, code: str, version: int, /, **fields: Any) -> bool:
        unknown = set(fields) - VERSION_PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch version fields: {sorted(unknown)}")
        record = self.state.history.get(code, {}).get(version)
        if record is None:
            return False
        versions = self._writable_versions(code)
        versions[version] = replace(record, **fields)
        return True

    async def delete_version(self, code: str, version: int) -> bool:
        if version not in self.state.history.get(code, {}):
            return False
        del self._writable_versions(code)[version]
        return True

    async def list_versions(self, code: str, descending: bool = False) -> list[VersionRecord]:
        versions = self.state.history.get(code, {})
        return [replace(versions[v]) for v in sorted(versions, reverse=descending)]

    async def latest_version(self, code: str) -> VersionRecord | None:
        versions = self.state.history.get(code, {})
        if not versions:
            return None
        return replace(versions[max(versions)])

    async def delete_versions_except(self, code: str, keep_version: int | None) -> int:
        doomed = [v for v in self.state.history.get(code, {}) if v != keep_version]
        if not doomed:
            return 0
        versions = self._writable_versions(code)
        for v in doomed:
            del versions[v]
        return len(doomed)


class MemoryStore(ClipboardStore):
    """
    In-memory persistence backend.

    Transactions are serialized by a lock and isolated by copy-on-write
    (the top-level maps up front, a session's versions on first write);
    suitable for tests and development, not for multi-process deployments.
    """

    def __init__(self) -> None:
        self._state = _MemoryState()
        self._lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        self._initialized = True
        logger.debug("Memory store initialized")

    async def close(self) -> None:
        self._initialized = False

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MemoryTransaction]:
        """Run against a working copy; publish it only if the block succeeds."""
        if not self._initialized:
            raise StorageIOError("transaction", cause=RuntimeError("Not initialized"))

        async with self._lock:
            # Sessions and records are immutable once stored; replacing them is the only write
            working = _MemoryState(
                sessions=dict(self._state.sessions),
                link_tokens=dict(self._state.link_tokens),
                history=dict(self._state.history),
            )
            yield MemoryTransaction(working)
            self._state = working
