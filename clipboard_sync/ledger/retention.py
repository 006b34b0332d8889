"""
Retention policy for session history.

When history is disabled a session keeps a single record: the one at
its current last_version. Pruning is destructive and is never undone
when history is re-enabled.
"""

from __future__ import annotations

import logging

from ..backends.base import StoreTransaction
from ..protocol import Session
from .head import recompute_head

logger = logging.getLogger(__name__)


class RetentionPolicy:
    """Collapses a ledger to at most one record.

    Invoked by the registry when allow_history flips to False, and by the
    ledger after every write to a session whose history is disabled.
    Always runs inside the caller's transaction.
    """

    async def collapse(self, tx: StoreTransaction, session: Session) -> int:
        """Delete every record except the head.

        If the record at last_version has vanished, the highest surviving
        record is kept instead and the session head is repaired.

        Args:
            tx: Open store transaction
            session: Session as read in the same transaction

        Returns:
            Number of records deleted
        """
        keep = None
        if session.last_version > 0:
            keep = await tx.get_version(session.code, session.last_version)
        if keep is None:
            keep = await tx.latest_version(session.code)

        pruned = await tx.delete_versions_except(session.code, keep.version if keep else None)
        await recompute_head(tx, session)

        if pruned:
            logger.info(
                f"Pruned {pruned} version(s) from {session.code}",
                extra={"session_code": session.code, "kept_version": session.last_version},
            )
        return pruned

    async def apply(self, tx: StoreTransaction, session: Session) -> int:
        """Collapse only if the session has history disabled."""
        if session.allow_history:
            return 0
        return await self.collapse(tx, session)
