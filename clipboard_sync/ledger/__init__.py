"""
Session registry, version ledger and retention policy.

All semantics of the clipboard history live here; transports and replicas
call ClipboardService.
"""

from .head import recompute_head
from .locks import SessionLocks
from .registry import SessionRegistry
from .retention import RetentionPolicy
from .service import ClipboardService
from .versions import VersionLedger

__all__ = [
    "ClipboardService",
    "RetentionPolicy",
    "SessionLocks",
    "SessionRegistry",
    "VersionLedger",
    "recompute_head",
]
