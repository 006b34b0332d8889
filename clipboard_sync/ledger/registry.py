"""
Session registry.

Creates sessions with random identifiers, resolves them by code or by link
token, and owns the per-session preferences (history flag, language hint,
auto-format preference). Lookups return SessionInfo, never ciphertext.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from ..backends.base import ClipboardStore
from ..exceptions import SessionExistsError, SessionNotFoundError
from ..id_utils import (
    DEFAULT_CODE_LENGTH,
    DEFAULT_TOKEN_LENGTH,
    generate_link_token,
    generate_session_code,
)
from ..protocol import CreatedSession, Session, SessionInfo, utc_now
from .locks import SessionLocks
from .retention import RetentionPolicy
from .validation import optional_flag, optional_lang_hint, require_code
from .versions import load_session

logger = logging.getLogger(__name__)

DEFAULT_LANG_HINT = "plain"


class SessionRegistry:
    """Lifecycle and metadata of clipboard sessions.

    Shares SessionLocks and RetentionPolicy with the VersionLedger so a
    history toggle and a concurrent write on the same session serialize.

    Example:
        >>> registry = SessionRegistry(store)
        >>> created = await registry.create_session()
        >>> info = await registry.join_by_link_token(created.link_token)
        >>> info.code == created.code
        True
    """

    def __init__(
        self,
        store: ClipboardStore,
        locks: SessionLocks | None = None,
        retention: RetentionPolicy | None = None,
        code_length: int = DEFAULT_CODE_LENGTH,
        token_length: int = DEFAULT_TOKEN_LENGTH,
        session_ttl: timedelta = timedelta(hours=24),
        create_attempts: int = 5,
    ) -> None:
        self.store = store
        self.locks = locks or SessionLocks()
        self.retention = retention or RetentionPolicy()
        self.code_length = code_length
        self.token_length = token_length
        self.session_ttl = session_ttl
        self.create_attempts = create_attempts

    async def create_session(self) -> CreatedSession:
        """Create a session with a fresh code and link token.

        Identifier collisions are detected by the store's unique
        constraints; on SessionExistsError new identifiers are drawn, up
        to create_attempts times.

        Returns:
            CreatedSession with code and link_token

        Raises:
            SessionExistsError: Every attempt collided
        """
        last_error: SessionExistsError | None = None
        for attempt in range(1, self.create_attempts + 1):
            session = Session(
                code=generate_session_code(self.code_length),
                link_token=generate_link_token(self.token_length),
                allow_history=True,
                expires_at=utc_now() + self.session_ttl,
                last_version=0,
                latest_ciphertext="",
                current_lang_hint=DEFAULT_LANG_HINT,
                auto_format_pref=True,
            )
            try:
                async with self.store.transaction() as tx:
                    await tx.insert_session(session)
            except SessionExistsError as e:
                last_error = e
                logger.warning(
                    f"Identifier collision creating session "
                    f"(attempt {attempt}/{self.create_attempts})"
                )
                continue

            logger.info(f"Created session {session.code}", extra={"session_code": session.code})
            return CreatedSession(code=session.code, link_token=session.link_token)

        assert last_error is not None
        raise last_error

    async def get_session_by_code(self, code: str) -> SessionInfo:
        """Resolve a session by its short code."""
        code = require_code(code)
        async with self.store.transaction() as tx:
            session = await load_session(tx, code)
        return session.info()

    async def join_by_link_token(self, link_token: str) -> SessionInfo:
        """Resolve a session by its capability token."""
        link_token = require_code(link_token, "link_token")
        async with self.store.transaction() as tx:
            session = await tx.get_session_by_link_token(link_token)
        if session is None:
            raise SessionNotFoundError(link_token_lookup=True)
        return session.info()

    async def update_session_prefs(
        self,
        code: str,
        auto_format: bool | None = None,
        lang_hint: str | None = None,
    ) -> SessionInfo:
        """Patch the supplied preferences; fields left as None are untouched.

        Returns:
            SessionInfo after the patch
        """
        code = require_code(code)
        auto_format = optional_flag(auto_format, "auto_format")
        lang_hint = optional_lang_hint(lang_hint)

        patch: dict[str, Any] = {}
        if auto_format is not None:
            patch["auto_format_pref"] = auto_format
        if lang_hint is not None:
            patch["current_lang_hint"] = lang_hint

        async with self.locks.hold(code):
            async with self.store.transaction() as tx:
                session = await load_session(tx, code)
                if patch:
                    await tx.update_session(code, **patch)
                    session.auto_format_pref = patch.get("auto_format_pref", session.auto_format_pref)
                    session.current_lang_hint = patch.get(
                        "current_lang_hint", session.current_lang_hint
                    )
        return session.info()

    async def toggle_history(self, code: str) -> bool:
        """Flip allow_history for a session.

        Turning history off prunes the ledger to its head record in the same
        transaction. Turning it back on restores nothing.

        Returns:
            The new value of allow_history
        """
        code = require_code(code)
        async with self.locks.hold(code):
            async with self.store.transaction() as tx:
                session = await load_session(tx, code)
                session.allow_history = not session.allow_history
                await tx.update_session(code, allow_history=session.allow_history)
                if not session.allow_history:
                    await self.retention.collapse(tx, session)

        logger.info(
            f"History {'enabled' if session.allow_history else 'disabled'} for {code}",
            extra={"session_code": code},
        )
        return session.allow_history

