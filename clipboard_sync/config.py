"""
Runtime configuration for the clipboard sync service.

Values come from explicit arguments, then environment variables, then
defaults. The CLI layers its flags on top of from_env().
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .exceptions import ValidationError
from .id_utils import DEFAULT_CODE_LENGTH, DEFAULT_TOKEN_LENGTH


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(name, "must be an integer", raw) from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ClipboardConfig:
    """Configuration for the clipboard sync service.

    Environment Variables:
        CLIPBOARD_DB_PATH: SQLite database path (default: :memory:)
        CLIPBOARD_SESSION_TTL_HOURS: Passive expiry stamped on new sessions (default: 24)
        CLIPBOARD_CODE_LENGTH: Session code length (default: 5)
        CLIPBOARD_TOKEN_LENGTH: Link token length (default: 16)
        CLIPBOARD_CREATE_ATTEMPTS: Retries on identifier collision (default: 5)
        CLIPBOARD_HOST: Bind address (default: 0.0.0.0)
        CLIPBOARD_PORT: Bind port (default: 4000)
        CLIPBOARD_LOG_LEVEL: Logging level name (default: INFO)
        CLIPBOARD_JSON_LOGS: Emit structured JSON logs (default: false)
        CLIPBOARD_MAX_BODY_BYTES: Maximum request body size (default: 65536)
        CLIPBOARD_PUBLIC_BASE_URL: Base URL used when building share links
    """

    db_path: str | Path = ":memory:"
    session_ttl_hours: int = 24
    code_length: int = DEFAULT_CODE_LENGTH
    token_length: int = DEFAULT_TOKEN_LENGTH
    create_attempts: int = 5
    host: str = "0.0.0.0"
    port: int = 4000
    log_level: str = "INFO"
    json_logs: bool = False
    max_body_bytes: int = 64 * 1024
    public_base_url: str | None = None

    def __post_init__(self) -> None:
        if self.code_length <= 0:
            raise ValidationError("code_length", "must be positive", str(self.code_length))
        if self.token_length <= self.code_length:
            raise ValidationError(
                "token_length", "must be longer than the session code", str(self.token_length)
            )
        if self.create_attempts < 1:
            raise ValidationError("create_attempts", "must be at least 1", str(self.create_attempts))
        if self.session_ttl_hours < 0:
            raise ValidationError(
                "session_ttl_hours", "must not be negative", str(self.session_ttl_hours)
            )

    @property
    def log_level_value(self) -> int:
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.INFO

    @classmethod
    def from_env(cls) -> ClipboardConfig:
        """Create config from environment variables."""
        return cls(
            db_path=os.environ.get("CLIPBOARD_DB_PATH", ":memory:"),
            session_ttl_hours=_env_int("CLIPBOARD_SESSION_TTL_HOURS", 24),
            code_length=_env_int("CLIPBOARD_CODE_LENGTH", DEFAULT_CODE_LENGTH),
            token_length=_env_int("CLIPBOARD_TOKEN_LENGTH", DEFAULT_TOKEN_LENGTH),
            create_attempts=_env_int("CLIPBOARD_CREATE_ATTEMPTS", 5),
            host=os.environ.get("CLIPBOARD_HOST", "0.0.0.0"),
            port=_env_int("CLIPBOARD_PORT", 4000),
            log_level=os.environ.get("CLIPBOARD_LOG_LEVEL", "INFO"),
            json_logs=_env_bool("CLIPBOARD_JSON_LOGS", False),
            max_body_bytes=_env_int("CLIPBOARD_MAX_BODY_BYTES", 64 * 1024),
            public_base_url=os.environ.get("CLIPBOARD_PUBLIC_BASE_URL") or None,
        )
