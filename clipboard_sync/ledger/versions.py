"""
Version ledger for clipboard sessions.

Each session owns an ordered set of ciphertext checkpoints. Writers either
amend the checkpoint at last_version in place (coalescing rapid edits such
as debounced autosave) or append a new checkpoint at last_version + 1
(discrete, intentional saves).

Every mutating operation runs under the session's lock and inside one store
transaction, so the session head (last_version, latest_ciphertext) and the
affected records always change together.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any

from ..backends.base import ClipboardStore, StoreTransaction
from ..exceptions import ConflictError, SessionNotFoundError
from ..protocol import (
    EMPTY_LATEST,
    HistoryItem,
    LatestCiphertext,
    PatchResult,
    Session,
    UpdateMode,
    UpdateResult,
    VersionRecord,
    utc_now,
)
from .head import recompute_head
from .locks import SessionLocks
from .retention import RetentionPolicy
from .validation import (
    optional_expected_version,
    optional_lang_hint,
    require_ciphertext,
    require_code,
    require_history_items,
    require_mode,
    require_version,
    require_versions,
)

logger = logging.getLogger(__name__)


async def load_session(tx: StoreTransaction, code: str) -> Session:
    """Read a session inside a transaction or raise SessionNotFoundError."""
    session = await tx.get_session_by_code(code)
    if session is None:
        raise SessionNotFoundError(code)
    return session


class VersionLedger:
    """Append/amend/delete/restore logic over a session's versions.

    Example:
        >>> ledger = VersionLedger(store)
        >>> await ledger.update_clipboard("AB12C", "ct1", UpdateMode.APPEND)
        UpdateResult(version=1, mode=<UpdateMode.APPEND: 'append'>)
        >>> await ledger.update_clipboard("AB12C", "ct1b", UpdateMode.AMEND)
        UpdateResult(version=1, mode=<UpdateMode.AMEND: 'amend'>)
    """

    def __init__(
        self,
        store: ClipboardStore,
        locks: SessionLocks | None = None,
        retention: RetentionPolicy | None = None,
    ) -> None:
        self.store = store
        self.locks = locks or SessionLocks()
        self.retention = retention or RetentionPolicy()

    @asynccontextmanager
    async def _mutation(self, code: str) -> AsyncIterator[StoreTransaction]:
        async with self.locks.hold(code):
            async with self.store.transaction() as tx:
                yield tx

    # =========================================================================
    # Writes
    # =========================================================================

    async def update_clipboard(
        self,
        code: str,
        ciphertext: str,
        replace_latest: UpdateMode | bool = UpdateMode.APPEND,
        lang_hint: str | None = None,
        expected_version: int | None = None,
    ) -> UpdateResult:
        """Store a new payload for a session.

        Args:
            code: Session code
            ciphertext: Encrypted payload
            replace_latest: AMEND (or True) to patch the latest checkpoint,
                APPEND (or False) to start a new one
            lang_hint: Optional language/mode of the payload
            expected_version: For AMEND, the last version the caller saw.
                When given and stale, ConflictError is raised and nothing
                changes. When omitted, the amend is last-write-wins.

        Returns:
            UpdateResult with the version now holding the payload

        Raises:
            SessionNotFoundError: Session does not exist
            ValidationError: Malformed arguments
            ConflictError: expected_version no longer matches
        """
        code = require_code(code)
        ciphertext = require_ciphertext(ciphertext)
        mode = require_mode(replace_latest)
        lang_hint = optional_lang_hint(lang_hint)
        expected_version = optional_expected_version(expected_version)

        async with self._mutation(code) as tx:
            session = await load_session(tx, code)

            if (
                mode is UpdateMode.AMEND
                and expected_version is not None
                and expected_version != session.last_version
            ):
                raise ConflictError(code, expected_version, session.last_version)

            result: UpdateResult | None = None
            if mode is UpdateMode.AMEND and session.last_version > 0:
                result = await self._amend_latest(tx, session, ciphertext, lang_hint)
                if result is None:
                    logger.warning(
                        f"Record v{session.last_version} of {code} vanished; appending instead"
                    )

            if result is None:
                result = await self._append(tx, session, ciphertext, lang_hint)

            # One-record ledger while history is off, whatever the caller asked for
            await self.retention.apply(tx, session)

        logger.debug(
            f"Stored payload for {code} at v{result.version} ({result.mode.value})",
            extra={"session_code": code, "version": result.version},
        )
        return result

    async def _amend_latest(
        self,
        tx: StoreTransaction,
        session: Session,
        ciphertext: str,
        lang_hint: str | None,
    ) -> UpdateResult | None:
        patch: dict[str, Any] = {"ciphertext": ciphertext, "updated_at": utc_now()}
        if lang_hint:
            patch["lang_hint"] = lang_hint
        found = await tx.update_version(session.code, session.last_version, **patch)
        if not found:
            return None

        session_patch: dict[str, Any] = {"latest_ciphertext": ciphertext}
        if lang_hint:
            session_patch["current_lang_hint"] = lang_hint
        await tx.update_session(session.code, **session_patch)

        session.latest_ciphertext = ciphertext
        return UpdateResult(version=session.last_version, mode=UpdateMode.AMEND)

    async def _append(
        self,
        tx: StoreTransaction,
        session: Session,
        ciphertext: str,
        lang_hint: str | None,
    ) -> UpdateResult:
        next_version = session.last_version + 1
        now = utc_now()
        await tx.insert_version(
            VersionRecord(
                session_code=session.code,
                version=next_version,
                ciphertext=ciphertext,
                created_at=now,
                updated_at=now,
                lang_hint=lang_hint,
            )
        )

        session_patch: dict[str, Any] = {
            "last_version": next_version,
            "latest_ciphertext": ciphertext,
        }
        if lang_hint:
            session_patch["current_lang_hint"] = lang_hint
        await tx.update_session(session.code, **session_patch)

        session.last_version = next_version
        session.latest_ciphertext = ciphertext
        return UpdateResult(version=next_version, mode=UpdateMode.APPEND)

    async def update_history_version(
        self,
        code: str,
        version: int,
        ciphertext: str,
        lang_hint: str | None = None,
    ) -> PatchResult:
        """Rewrite the payload of one specific version.

        Used when a user deliberately edits an old revision. Returns
        PatchResult(ok=False, missing=True) if the version is gone.
        """
        code = require_code(code)
        version = require_version(version)
        ciphertext = require_ciphertext(ciphertext)
        lang_hint = optional_lang_hint(lang_hint)

        async with self._mutation(code) as tx:
            session = await load_session(tx, code)

            patch: dict[str, Any] = {"ciphertext": ciphertext, "updated_at": utc_now()}
            if lang_hint:
                patch["lang_hint"] = lang_hint
            if not await tx.update_version(code, version, **patch):
                logger.info(f"Edit target v{version} of {code} no longer exists")
                return PatchResult(ok=False, missing=True)

            if version == session.last_version:
                session_patch: dict[str, Any] = {"latest_ciphertext": ciphertext}
                if lang_hint:
                    session_patch["current_lang_hint"] = lang_hint
                await tx.update_session(code, **session_patch)

        return PatchResult(ok=True)

    async def delete_history(self, code: str, version: int) -> bool:
        """Delete one version; a missing version is a no-op.

        Returns:
            True if a record was deleted
        """
        code = require_code(code)
        version = require_version(version)

        async with self._mutation(code) as tx:
            session = await load_session(tx, code)
            deleted = await tx.delete_version(code, version)
            await recompute_head(tx, session)

        if deleted:
            logger.info(f"Deleted v{version} of {code}; head is v{session.last_version}")
        return deleted

    async def delete_history_batch(self, code: str, versions: Iterable[int]) -> int:
        """Delete several versions with a single head recompute.

        Returns:
            Number of records actually deleted
        """
        code = require_code(code)
        targets = require_versions(versions)

        async with self._mutation(code) as tx:
            session = await load_session(tx, code)
            deleted = 0
            for version in dict.fromkeys(targets):
                if await tx.delete_version(code, version):
                    deleted += 1
            await recompute_head(tx, session)

        logger.info(
            f"Batch-deleted {deleted}/{len(targets)} version(s) of {code}; "
            f"head is v{session.last_version}"
        )
        return deleted

    async def restore_history_items(
        self,
        code: str,
        items: Iterable[HistoryItem | dict[str, Any]],
    ) -> int:
        """Re-insert versions a client still holds but the server lost.

        Existing versions are never overwritten, so replaying the same
        items is harmless. The head moves to the global maximum afterwards,
        which may be a restored item.

        Returns:
            Number of restored records still present afterwards
        """
        code = require_code(code)
        validated = require_history_items(items)

        async with self._mutation(code) as tx:
            session = await load_session(tx, code)
            restored: list[int] = []
            for item in validated:
                if await tx.get_version(code, item.version) is not None:
                    continue
                now = utc_now()
                await tx.insert_version(
                    VersionRecord(
                        session_code=code,
                        version=item.version,
                        ciphertext=item.ciphertext,
                        created_at=item.created_at or now,
                        updated_at=now,
                        lang_hint=item.lang_hint,
                    )
                )
                restored.append(item.version)

            await recompute_head(tx, session)
            if await self.retention.apply(tx, session):
                # Only what survived the collapse counts as restored
                restored = [v for v in restored if v == session.last_version]
            inserted = len(restored)

        if inserted:
            logger.info(f"Restored {inserted} version(s) into {code}; head is v{session.last_version}")
        return inserted

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_history(self, code: str) -> list[VersionRecord]:
        """All versions of a session, ascending by version."""
        code = require_code(code)
        async with self.store.transaction() as tx:
            await load_session(tx, code)
            return await tx.list_versions(code)

    async def latest_ciphertext(self, code: str) -> LatestCiphertext:
        """Head payload, or (0, "") when the session has no version yet."""
        code = require_code(code)
        async with self.store.transaction() as tx:
            session = await load_session(tx, code)
        if session.last_version == 0:
            return replace(EMPTY_LATEST)
        return LatestCiphertext(version=session.last_version, ciphertext=session.latest_ciphertext)
