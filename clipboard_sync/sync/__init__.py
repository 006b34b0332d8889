"""
Realtime relay and reconciliation.

The relay fans advisory hints out to the other devices in a session's
room; replicas apply them provisionally and reconcile against the ledger.
"""

from .client import RelayClient
from .reconcile import AutosavePolicy, ClipboardReplica
from .server import RelayConnection, RelayServer, RoomManager

__all__ = [
    "AutosavePolicy",
    "ClipboardReplica",
    "RelayClient",
    "RelayConnection",
    "RelayServer",
    "RoomManager",
]
