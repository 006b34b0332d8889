"""
Abstract base classes for persistence backends.

All stores (SQLite, in-memory) implement these interfaces. Every read and
write goes through a transaction so a ledger operation is applied as one
atomic unit: either all of its session and version changes land, or none.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..protocol import Session, VersionRecord

# Session columns that callers may patch through update_session
SESSION_PATCHABLE_FIELDS = frozenset(
    {
        "allow_history",
        "last_version",
        "latest_ciphertext",
        "current_lang_hint",
        "auto_format_pref",
    }
)

# Version columns that callers may patch through update_version
VERSION_PATCHABLE_FIELDS = frozenset({"ciphertext", "updated_at", "lang_hint"})


class StoreTransaction(ABC):
    """
    Unit of work against the store.

    Obtained from ClipboardStore.transaction(); invalid once the
    surrounding context exits.
    """

    # =========================================================================
    # Sessions
    # =========================================================================

    @abstractmethod
    async def get_session_by_code(self, code: str) -> Session | None:
        """Look up a session through the unique code index."""

    @abstractmethod
    async def get_session_by_link_token(self, link_token: str) -> Session | None:
        """Look up a session through the unique link token index."""

    @abstractmethod
    async def insert_session(self, session: Session) -> None:
        """
        Insert a new session.

        Raises:
            SessionExistsError: code or link token already taken
        """

    @abstractmethod
    async def update_session(self, code: str, /, **fields: Any) -> None:
        """Patch the given session fields; unknown fields raise ValueError."""

    # =========================================================================
    # Versions
    # =========================================================================

    @abstractmethod
    async def get_version(self, code: str, version: int) -> VersionRecord | None:
        """Look up one record through the (session_code, version) index."""

    @abstractmethod
    async def insert_version(self, record: VersionRecord) -> None:
        """Insert a record; the (session_code, version) pair must be free."""

    @abstractmethod
    async def update_version(self, code: str, version: int, /, **fields: Any) -> bool:
        """Patch a record in place. Returns False if it does not exist."""

    @abstractmethod
    async def delete_version(self, code: str, version: int) -> bool:
        """Delete a record. Returns False if it did not exist."""

    @abstractmethod
    async def list_versions(self, code: str, descending: bool = False) -> list[VersionRecord]:
        """All records of a session ordered by version."""

    @abstractmethod
    async def latest_version(self, code: str) -> VersionRecord | None:
        """Record with the highest version, or None if the ledger is empty."""

    @abstractmethod
    async def delete_versions_except(self, code: str, keep_version: int | None) -> int:
        """Delete every record except keep_version (all if None). Returns count deleted."""


class ClipboardStore(ABC):
    """
    Abstract base for all persistence backends.

    Implementations must provide:
    - unique lookup by code, by link token and by (session_code, version)
    - atomic insert / patch / delete inside transaction()
    - ascending and descending scans of a session's versions
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the store (connections, schema, indexes)."""

    @abstractmethod
    async def close(self) -> None:
        """Close connections and cleanup resources."""

    @abstractmethod
    def transaction(self) -> Any:
        """
        Open a transaction.

        Usage:
            async with store.transaction() as tx:
                session = await tx.get_session_by_code(code)
                ...

        Commits when the block exits normally, rolls back on any exception.
        Store-level failures surface as StorageIOError.
        """

    async def __aenter__(self) -> ClipboardStore:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
