"""
Head bookkeeping for a session's ledger.

The session row caches the head of its ledger (last_version and
latest_ciphertext). Any operation that removes or bulk-inserts records
calls recompute_head inside the same transaction to restore:

    last_version == max(version) or 0
    latest_ciphertext == ciphertext at last_version or ""
"""

from __future__ import annotations

import logging

from ..backends.base import StoreTransaction
from ..protocol import Session

logger = logging.getLogger(__name__)


async def recompute_head(tx: StoreTransaction, session: Session) -> Session:
    """Point the session at its highest surviving record.

    Args:
        tx: Open store transaction
        session: Session as read earlier in the same transaction

    Returns:
        The session with refreshed head fields
    """
    latest = await tx.latest_version(session.code)
    last_version = latest.version if latest else 0
    latest_ciphertext = latest.ciphertext if latest else ""

    if last_version == session.last_version and latest_ciphertext == session.latest_ciphertext:
        return session

    await tx.update_session(
        session.code,
        last_version=last_version,
        latest_ciphertext=latest_ciphertext,
    )
    if last_version < session.last_version:
        logger.debug(f"Head of {session.code} moved back: v{session.last_version} -> v{last_version}")

    session.last_version = last_version
    session.latest_ciphertext = latest_ciphertext
    return session
