"""
SQLite persistence backend.

Single-file (or in-memory) store built on aiosqlite. One connection is
shared by the process; an asyncio lock gives each transaction exclusive
use of it, and BEGIN IMMEDIATE / ROLLBACK make every ledger operation
all-or-nothing.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ..exceptions import SessionExistsError, StorageConnectionError, StorageIOError
from ..protocol import Session, VersionRecord
from .base import (
    SESSION_PATCHABLE_FIELDS,
    VERSION_PATCHABLE_FIELDS,
    ClipboardStore,
    StoreTransaction,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# =============================================================================
# Column Definitions - Centralized for consistency and maintainability
# =============================================================================

SESSION_READ_COLUMNS = (
    "code",
    "link_token",
    "allow_history",
    "expires_at",
    "last_version",
    "latest_ciphertext",
    "current_lang_hint",
    "auto_format_pref",
)

HISTORY_READ_COLUMNS = (
    "session_code",
    "version",
    "ciphertext",
    "created_at",
    "updated_at",
    "lang_hint",
)

_SESSION_SELECT = f"SELECT {', '.join(SESSION_READ_COLUMNS)} FROM sessions"
_HISTORY_SELECT = f"SELECT {', '.join(HISTORY_READ_COLUMNS)} FROM history"


@dataclass
class SQLiteConfig:
    """Configuration for SQLite storage."""

    db_path: str | Path = ":memory:"
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> SQLiteConfig:
        """Create config from environment variables."""
        return cls(
            db_path=os.environ.get("CLIPBOARD_DB_PATH", ":memory:"),
            busy_timeout_ms=int(os.environ.get("CLIPBOARD_SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


def _to_ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _from_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _to_flag(value: bool | None) -> int | None:
    return None if value is None else int(bool(value))


def _row_to_session(row: Any) -> Session:
    return Session(
        code=row[0],
        link_token=row[1],
        allow_history=bool(row[2]),
        expires_at=_from_ts(row[3]),
        last_version=int(row[4]),
        latest_ciphertext=row[5] or "",
        current_lang_hint=row[6],
        auto_format_pref=None if row[7] is None else bool(row[7]),
    )


def _row_to_record(row: Any) -> VersionRecord:
    created = _from_ts(row[3])
    updated = _from_ts(row[4])
    assert created is not None and updated is not None
    return VersionRecord(
        session_code=row[0],
        version=int(row[1]),
        ciphertext=row[2],
        created_at=created,
        updated_at=updated,
        lang_hint=row[5],
    )


class SQLiteTransaction(StoreTransaction):
    """Transaction bound to the store's single connection."""

    def __init__(self, conn: Any) -> None:
        self.conn = conn

    async def _fetchone(self, operation: str, sql: str, params: tuple) -> Any:
        try:
            async with self.conn.execute(sql, params) as cursor:
                return await cursor.fetchone()
        except (sqlite3.Error, OverflowError) as e:
            raise StorageIOError(operation, cause=e) from e

    async def _fetchall(self, operation: str, sql: str, params: tuple) -> list[Any]:
        try:
            async with self.conn.execute(sql, params) as cursor:
                return list(await cursor.fetchall())
        except (sqlite3.Error, OverflowError) as e:
            raise StorageIOError(operation, cause=e) from e

    async def _execute(self, operation: str, sql: str, params: tuple) -> int:
        try:
            cursor = await self.conn.execute(sql, params)
            rowcount = cursor.rowcount
            await cursor.close()
            return rowcount
        except (sqlite3.Error, OverflowError) as e:
            raise StorageIOError(operation, cause=e) from e

    # =========================================================================
    # Sessions
    # =========================================================================

    async def get_session_by_code(self, code: str) -> Session | None:
        row = await self._fetchone("get_session", f"{_SESSION_SELECT} WHERE code = ?", (code,))
        return _row_to_session(row) if row else None

    async def get_session_by_link_token(self, link_token: str) -> Session | None:
        row = await self._fetchone(
            "get_session_by_link_token",
            f"{_SESSION_SELECT} WHERE link_token = ?",
            (link_token,),
        )
        return _row_to_session(row) if row else None

    async def insert_session(self, session: Session) -> None:
        try:
            await self.conn.execute(
                """
                INSERT INTO sessions (
                    code, link_token, allow_history, expires_at, last_version,
                    latest_ciphertext, current_lang_hint, auto_format_pref
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.code,
                    session.link_token,
                    int(session.allow_history),
                    _to_ts(session.expires_at),
                    session.last_version,
                    session.latest_ciphertext,
                    session.current_lang_hint,
                    _to_flag(session.auto_format_pref),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise SessionExistsError(session.code) from e
        except (sqlite3.Error, OverflowError) as e:
            raise StorageIOError("insert_session", cause=e) from e

    async def update_session(self, code: str, /, **fields: Any) -> None:
        unknown = set(fields) - SESSION_PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch session fields: {sorted(unknown)}")
        if not fields:
            return

        values: list[Any] = []
        assignments: list[str] = []
        for name, value in fields.items():
            if name in ("allow_history", "auto_format_pref"):
                value = _to_flag(value)
            assignments.append(f"{name} = ?")
            values.append(value)
        values.append(code)

        await self._execute(
            "update_session",
            f"UPDATE sessions SET {', '.join(assignments)} WHERE code = ?",
            tuple(values),
        )

    # =========================================================================
    # Versions
    # =========================================================================

    async def get_version(self, code: str, version: int) -> VersionRecord | None:
        row = await self._fetchone(
            "get_version",
            f"{_HISTORY_SELECT} WHERE session_code = ? AND version = ?",
            (code, version),
        )
        return _row_to_record(row) if row else None

    async def insert_version(self, record: VersionRecord) -> None:
        await self._execute(
            "insert_version",
            """
            INSERT INTO history (
                session_code, version, ciphertext, created_at, updated_at, lang_hint
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.session_code,
                record.version,
                record.ciphertext,
                _to_ts(record.created_at),
                _to_ts(record.updated_at),
                record.lang_hint,
            ),
        )

    async def update_version(self, code: str, version: int, /, **fields: Any) -> bool:
        unknown = set(fields) - VERSION_PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch version fields: {sorted(unknown)}")
        if not fields:
            return await self.get_version(code, version) is not None

        values: list[Any] = []
        assignments: list[str] = []
        for name, value in fields.items():
            if name == "updated_at":
                value = _to_ts(value)
            assignments.append(f"{name} = ?")
            values.append(value)
        values.extend([code, version])

        changed = await self._execute(
            "update_version",
            f"UPDATE history SET {', '.join(assignments)} WHERE session_code = ? AND version = ?",
            tuple(values),
        )
        return changed > 0

    async def delete_version(self, code: str, version: int) -> bool:
        deleted = await self._execute(
            "delete_version",
            "DELETE FROM history WHERE session_code = ? AND version = ?",
            (code, version),
        )
        return deleted > 0

    async def list_versions(self, code: str, descending: bool = False) -> list[VersionRecord]:
        order = "DESC" if descending else "ASC"
        rows = await self._fetchall(
            "list_versions",
            f"{_HISTORY_SELECT} WHERE session_code = ? ORDER BY version {order}",
            (code,),
        )
        return [_row_to_record(row) for row in rows]

    async def latest_version(self, code: str) -> VersionRecord | None:
        row = await self._fetchone(
            "latest_version",
            f"{_HISTORY_SELECT} WHERE session_code = ? ORDER BY version DESC LIMIT 1",
            (code,),
        )
        return _row_to_record(row) if row else None

    async def delete_versions_except(self, code: str, keep_version: int | None) -> int:
        if keep_version is None:
            return await self._execute(
                "prune_versions",
                "DELETE FROM history WHERE session_code = ?",
                (code,),
            )
        return await self._execute(
            "prune_versions",
            "DELETE FROM history WHERE session_code = ? AND version != ?",
            (code, keep_version),
        )


class SQLiteStore(ClipboardStore):
    """
    SQLite persistence backend.

    Features:
    - Single file database (or :memory: for tests)
    - Unique indexes on sessions.code, sessions.link_token and
      history(session_code, version)
    - Serialized transactions over one aiosqlite connection
    """

    def __init__(self, config: SQLiteConfig):
        self.config = config
        self.conn: Any = None  # aiosqlite.Connection
        self._lock: Any = None  # asyncio.Lock, created on initialize
        self._initialized = False

    @classmethod
    async def create(cls, config: SQLiteConfig | None = None) -> SQLiteStore:
        """Create and initialize a SQLite store."""
        if config is None:
            config = SQLiteConfig.from_env()

        store = cls(config)
        await store.initialize()
        return store

    async def initialize(self) -> None:
        """Open the connection and create schema."""
        if self._initialized:
            return

        try:
            # isolation_level=None: transactions are issued explicitly below
            self.conn = await aiosqlite.connect(str(self.config.db_path), isolation_level=None)
            await self.conn.execute("PRAGMA foreign_keys = ON")
            await self.conn.execute(f"PRAGMA busy_timeout = {int(self.config.busy_timeout_ms)}")
            if str(self.config.db_path) != ":memory:":
                await self.conn.execute("PRAGMA journal_mode = WAL")

            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    code TEXT NOT NULL PRIMARY KEY,
                    link_token TEXT NOT NULL UNIQUE,
                    allow_history INTEGER NOT NULL DEFAULT 1,
                    expires_at TEXT,
                    last_version INTEGER NOT NULL DEFAULT 0,
                    latest_ciphertext TEXT NOT NULL DEFAULT '',
                    current_lang_hint TEXT,
                    auto_format_pref INTEGER
                )
            """)

            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS history (
                    session_code TEXT NOT NULL
                        REFERENCES sessions (code) ON DELETE CASCADE,
                    version INTEGER NOT NULL CHECK (version > 0),
                    ciphertext TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    lang_hint TEXT,
                    PRIMARY KEY (session_code, version)
                )
            """)

            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

            # Used by the external expiry sweep, never by the ledger
            await self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_expires ON sessions (expires_at)"
            )

            await self.conn.execute(
                """
                INSERT INTO schema_meta (key, value) VALUES ('version', ?)
                ON CONFLICT (key) DO UPDATE SET value = excluded.value
                """,
                (str(SCHEMA_VERSION),),
            )

            self._lock = asyncio.Lock()
            self._initialized = True
            logger.info(f"SQLite store initialized: {self.config.db_path}")

        except (sqlite3.Error, OSError) as e:
            raise StorageConnectionError(str(self.config.db_path), e) from e

    async def close(self) -> None:
        """Close SQLite connection."""
        if self.conn:
            await self.conn.close()
            self.conn = None

        self._initialized = False

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteTransaction]:
        """Exclusive transaction; rolls back on any exception."""
        if self.conn is None or self._lock is None:
            raise StorageIOError("transaction", cause=RuntimeError("Not initialized"))

        async with self._lock:
            try:
                await self.conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageIOError("begin", cause=e) from e

            try:
                yield SQLiteTransaction(self.conn)
            except BaseException:
                try:
                    await self.conn.execute("ROLLBACK")
                except sqlite3.Error as rollback_error:
                    logger.error(f"Rollback failed: {rollback_error}")
                raise

            try:
                await self.conn.execute("COMMIT")
            except sqlite3.Error as e:
                await self.conn.execute("ROLLBACK")
                raise StorageIOError("commit", cause=e) from e
