"""
Custom exceptions for clipboard sync.

Every store, ledger and registry operation raises these exceptions
so callers (HTTP layer, replicas, CLI) can handle failures uniformly.

Taxonomy:
- SessionNotFoundError: the session does not exist (caller drops local state)
- ValidationError: malformed input, rejected before touching the store
- StorageIOError / StorageConnectionError / SessionExistsError: store failures,
  safe to retry
- ConflictError: a fenced amend observed a different latest version
"""


class ClipboardSyncError(Exception):
    """Base exception for all clipboard sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SessionNotFoundError(ClipboardSyncError):
    """Raised when a session is not found by code or link token."""

    def __init__(self, code: str | None = None, link_token_lookup: bool = False):
        details: dict = {}
        if code and not link_token_lookup:
            # Link tokens are bearer capabilities and never end up in details
            details["code"] = code
        if link_token_lookup:
            message = "Session not found for link token"
        else:
            message = f"Session not found: {code}"
        super().__init__(message, details)
        self.code = None if link_token_lookup else code


class ValidationError(ClipboardSyncError):
    """Raised when input validation fails."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class StoreFailure(ClipboardSyncError):
    """Base class for transient persistence failures.

    Callers may retry; local plaintext never left the device, so nothing
    needs to be discarded.
    """


class StorageIOError(StoreFailure):
    """Raised when a store operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class StorageConnectionError(StoreFailure):
    """Raised when the store cannot be opened.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class SessionExistsError(StoreFailure):
    """Raised when a generated code or link token collides with an existing session."""

    def __init__(self, code: str):
        super().__init__(f"Session already exists: {code}", {"code": code})
        self.code = code


class ConflictError(ClipboardSyncError):
    """Raised when a fenced amend finds the ledger moved past the caller's view."""

    def __init__(self, code: str, expected_version: int, actual_version: int):
        details = {
            "code": code,
            "expected_version": expected_version,
            "actual_version": actual_version,
        }
        super().__init__(
            f"Version conflict in session {code}: "
            f"expected v{expected_version}, found v{actual_version}",
            details,
        )
        self.code = code
        self.expected_version = expected_version
        self.actual_version = actual_version


class RelayError(ClipboardSyncError):
    """Raised by the relay client when the realtime transport fails."""

    def __init__(self, message: str, room: str | None = None, cause: Exception | None = None):
        details: dict = {}
        if room:
            details["room"] = room
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.room = room
        self.cause = cause
