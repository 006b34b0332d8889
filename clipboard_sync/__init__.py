"""
Clipboard Sync

End-to-end encrypted clipboard sharing with a versioned history.

Provides:
- Session registry (short codes and link-token capabilities)
- Version ledger with amend/append intents and head recompute
- Retention policy for sessions with history disabled
- Realtime broadcast relay (WebSocket rooms) and device replicas
- SQLite (aiosqlite) and in-memory stores

Usage:

    >>> from clipboard_sync import ClipboardService, MemoryStore, SessionCipher, UpdateMode
    >>> async with ClipboardService(MemoryStore()) as service:
    ...     created = await service.create_session()
    ...     cipher = SessionCipher.for_session(created.code, created.link_token)
    ...     await service.update_clipboard(created.code, cipher.encrypt("hi"), UpdateMode.APPEND)
    ...
    ...     latest = await service.latest_ciphertext(created.code)
    ...     cipher.decrypt(latest.ciphertext)

Running the server:

    clipboard-sync serve --db ./clipboard.db
"""

# Stores
from .backends import ClipboardStore, MemoryStore, SQLiteConfig, SQLiteStore
from .config import ClipboardConfig

# Encryption
from .crypto import SessionCipher, decrypt, derive_key, encrypt

# Exceptions
from .exceptions import (
    ClipboardSyncError,
    ConflictError,
    RelayError,
    SessionExistsError,
    SessionNotFoundError,
    StorageConnectionError,
    StorageIOError,
    StoreFailure,
    ValidationError,
)
from .id_utils import derive_secret

# Ledger
from .ledger import ClipboardService, RetentionPolicy, SessionRegistry, VersionLedger

# Types
from .protocol import (
    BroadcastHint,
    CreatedSession,
    HistoryItem,
    LatestCiphertext,
    PatchResult,
    Session,
    SessionInfo,
    UpdateMode,
    UpdateResult,
    VersionRecord,
)

# Realtime
from .sync import AutosavePolicy, ClipboardReplica, RelayClient, RelayServer, RoomManager

__all__ = [
    # Service
    "ClipboardService",
    "ClipboardConfig",
    "SessionRegistry",
    "VersionLedger",
    "RetentionPolicy",
    # Stores
    "ClipboardStore",
    "MemoryStore",
    "SQLiteStore",
    "SQLiteConfig",
    # Types
    "Session",
    "VersionRecord",
    "CreatedSession",
    "SessionInfo",
    "HistoryItem",
    "LatestCiphertext",
    "UpdateMode",
    "UpdateResult",
    "PatchResult",
    "BroadcastHint",
    # Encryption
    "SessionCipher",
    "derive_key",
    "derive_secret",
    "encrypt",
    "decrypt",
    # Realtime
    "RoomManager",
    "RelayServer",
    "RelayClient",
    "ClipboardReplica",
    "AutosavePolicy",
    # Exceptions
    "ClipboardSyncError",
    "SessionNotFoundError",
    "ValidationError",
    "StoreFailure",
    "StorageIOError",
    "StorageConnectionError",
    "SessionExistsError",
    "ConflictError",
    "RelayError",
]

__version__ = "0.1.0"
