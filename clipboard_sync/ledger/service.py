"""
Transport-agnostic service surface.

ClipboardService wires the registry and ledger to one store with a shared
set of session locks and a shared retention policy. HTTP handlers, replicas
and tests all talk to this class; none of them touch the store directly.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import timedelta
from typing import Any

from ..backends.base import ClipboardStore
from ..backends.sqlite import SQLiteConfig, SQLiteStore
from ..config import ClipboardConfig
from ..protocol import (
    CreatedSession,
    HistoryItem,
    LatestCiphertext,
    PatchResult,
    SessionInfo,
    UpdateMode,
    UpdateResult,
    VersionRecord,
)
from .locks import SessionLocks
from .registry import SessionRegistry
from .retention import RetentionPolicy
from .versions import VersionLedger

logger = logging.getLogger(__name__)


class ClipboardService:
    """The twelve clipboard operations over an injected store.

    Example:
        >>> service = await ClipboardService.create(ClipboardConfig())
        >>> created = await service.create_session()
        >>> await service.update_clipboard(created.code, "ct1", UpdateMode.APPEND)
        UpdateResult(version=1, mode=<UpdateMode.APPEND: 'append'>)
        >>> await service.close()
    """

    def __init__(
        self,
        store: ClipboardStore,
        config: ClipboardConfig | None = None,
    ) -> None:
        self.store = store
        self.config = config or ClipboardConfig()
        self.locks = SessionLocks()
        self.retention = RetentionPolicy()
        self.registry = SessionRegistry(
            store,
            locks=self.locks,
            retention=self.retention,
            code_length=self.config.code_length,
            token_length=self.config.token_length,
            session_ttl=timedelta(hours=self.config.session_ttl_hours),
            create_attempts=self.config.create_attempts,
        )
        self.ledger = VersionLedger(store, locks=self.locks, retention=self.retention)

    @classmethod
    async def create(cls, config: ClipboardConfig | None = None) -> ClipboardService:
        """Open a SQLite store from config and build a service over it."""
        if config is None:
            config = ClipboardConfig.from_env()
        store = await SQLiteStore.create(SQLiteConfig(db_path=config.db_path))
        logger.info(f"Clipboard service ready (db={config.db_path})")
        return cls(store, config)

    async def close(self) -> None:
        await self.store.close()

    async def __aenter__(self) -> ClipboardService:
        await self.store.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # =========================================================================
    # Sessions
    # =========================================================================

    async def create_session(self) -> CreatedSession:
        return await self.registry.create_session()

    async def get_session_by_code(self, code: str) -> SessionInfo:
        return await self.registry.get_session_by_code(code)

    async def join_by_link_token(self, link_token: str) -> SessionInfo:
        return await self.registry.join_by_link_token(link_token)

    async def update_session_prefs(
        self,
        code: str,
        auto_format: bool | None = None,
        lang_hint: str | None = None,
    ) -> SessionInfo:
        return await self.registry.update_session_prefs(code, auto_format, lang_hint)

    async def toggle_history(self, code: str) -> bool:
        return await self.registry.toggle_history(code)

    # =========================================================================
    # Versions
    # =========================================================================

    async def update_clipboard(
        self,
        code: str,
        ciphertext: str,
        replace_latest: UpdateMode | bool = UpdateMode.APPEND,
        lang_hint: str | None = None,
        expected_version: int | None = None,
    ) -> UpdateResult:
        return await self.ledger.update_clipboard(
            code, ciphertext, replace_latest, lang_hint, expected_version
        )

    async def get_history(self, code: str) -> list[VersionRecord]:
        return await self.ledger.get_history(code)

    async def latest_ciphertext(self, code: str) -> LatestCiphertext:
        return await self.ledger.latest_ciphertext(code)

    async def delete_history(self, code: str, version: int) -> bool:
        return await self.ledger.delete_history(code, version)

    async def delete_history_batch(self, code: str, versions: Iterable[int]) -> int:
        return await self.ledger.delete_history_batch(code, versions)

    async def restore_history_items(
        self,
        code: str,
        items: Iterable[HistoryItem | dict[str, Any]],
    ) -> int:
        return await self.ledger.restore_history_items(code, items)

    async def update_history_version(
        self,
        code: str,
        version: int,
        ciphertext: str,
        lang_hint: str | None = None,
    ) -> PatchResult:
        return await self.ledger.update_history_version(code, version, ciphertext, lang_hint)
