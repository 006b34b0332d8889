"""
Device-side reconciliation between the ledger and the relay.

The ledger is authoritative; relay hints are advisory. A replica applies
hints provisionally so the UI feels live, but only versions the ledger has
confirmed are ever used as the base for an amend. Reconciling replaces
provisional state with what the ledger holds.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from ..crypto import SessionCipher
from ..exceptions import ConflictError, RelayError, SessionNotFoundError, StoreFailure
from ..logging_utils import SessionLoggerAdapter
from ..protocol import BroadcastHint, HistoryItem, UpdateMode, UpdateResult

if TYPE_CHECKING:
    from ..ledger.service import ClipboardService
    from .client import RelayClient

logger = logging.getLogger(__name__)

AUTOSAVE_DEBOUNCE_SECONDS = 1.4


# =============================================================================
# Update Intent
# =============================================================================


class AutosavePolicy:
    """Decides between amending the latest version and appending a new one.

    Edits form a burst. A burst that starts within idle_window of the last
    confirmed save continues that checkpoint (AMEND); a burst after a pause
    starts a new one (APPEND). Saving is due once the editor has been quiet
    for the debounce period.

    Example:
        >>> policy = AutosavePolicy()
        >>> policy.note_edit()
        >>> policy.choose(confirmed_version=0)
        <UpdateMode.APPEND: 'append'>
    """

    def __init__(
        self,
        debounce: float = AUTOSAVE_DEBOUNCE_SECONDS,
        idle_window: float = AUTOSAVE_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.debounce = debounce
        self.idle_window = idle_window
        self._clock = clock
        self._last_save_at: float | None = None
        self._burst_started_at: float | None = None
        self._last_edit_at: float | None = None

    def note_edit(self) -> None:
        now = self._clock()
        if self._burst_started_at is None:
            self._burst_started_at = now
        self._last_edit_at = now

    @property
    def has_pending_edits(self) -> bool:
        return self._last_edit_at is not None

    def due(self) -> bool:
        """True when there are unsaved edits and the editor went quiet."""
        if self._last_edit_at is None:
            return False
        return self._clock() - self._last_edit_at >= self.debounce

    def choose(self, confirmed_version: int | None) -> UpdateMode:
        if not confirmed_version or self._last_save_at is None:
            return UpdateMode.APPEND
        if self._burst_started_at is None:
            # Explicit save with no edits since the last one
            return UpdateMode.APPEND
        if self._burst_started_at - self._last_save_at < self.idle_window:
            return UpdateMode.AMEND
        return UpdateMode.APPEND

    def record_save(self) -> None:
        self._last_save_at = self._clock()
        self._burst_started_at = None
        self._last_edit_at = None

    def reset(self) -> None:
        self._last_save_at = None
        self._burst_started_at = None
        self._last_edit_at = None


# =============================================================================
# Replica
# =============================================================================


class ClipboardReplica:
    """A device's local view of one session.

    State:
        confirmed_version: Latest version acknowledged by the ledger, or
            None before the first save or reconcile
        provisional: Newest relay hint not yet confirmed by the ledger
        history: Versions this device has seen, keyed by version

    Example:
        >>> replica = ClipboardReplica(service, code, link_token, relay=client)
        >>> client.on_hint = replica.apply_hint
        >>> await replica.reconcile()
        >>> await replica.save("hello")
        UpdateResult(version=1, mode=<UpdateMode.APPEND: 'append'>)
    """

    def __init__(
        self,
        service: ClipboardService,
        code: str,
        link_token: str,
        relay: RelayClient | None = None,
        policy: AutosavePolicy | None = None,
    ) -> None:
        self.service = service
        self.code = code
        self.link_token = link_token
        self.relay = relay
        self.policy = policy or AutosavePolicy()
        self.cipher = SessionCipher.for_session(code, link_token)
        self.log = SessionLoggerAdapter(logger, {"session_code": code})

        self.confirmed_version: int | None = None
        self.confirmed_ciphertext = ""
        self.provisional: BroadcastHint | None = None
        self.history: dict[int, HistoryItem] = {}
        self.pending_text: str | None = None
        self.session_lost = False

    # =========================================================================
    # Local view
    # =========================================================================

    @property
    def text(self) -> str | None:
        """Plaintext currently shown: unsaved edits, then hints, then the ledger."""
        if self.pending_text is not None:
            return self.pending_text
        if self.provisional is not None:
            return self.cipher.decrypt(self.provisional.ciphertext)
        if self.confirmed_ciphertext:
            return self.cipher.decrypt(self.confirmed_ciphertext)
        return None

    def edit(self, plaintext: str) -> None:
        """Record a local edit; saved later by autosave or an explicit save."""
        self.pending_text = plaintext
        self.policy.note_edit()

    def apply_hint(self, hint: BroadcastHint) -> bool:
        """Apply a relay hint provisionally.

        Returns:
            True if the hint changed the provisional state
        """
        if self.session_lost:
            return False
        if hint.room and hint.room != self.code:
            return False
        if self.confirmed_version is not None and hint.version < self.confirmed_version:
            self.log.debug(f"Ignoring stale hint v{hint.version} for {self.code}")
            return False
        if self.provisional is not None:
            if hint.version < self.provisional.version:
                return False
            if hint == self.provisional:
                return False

        self.provisional = hint
        return True

    def next_update_mode(self) -> UpdateMode:
        # A hinted version is never a basis for an amend
        if not self.confirmed_version:
            return UpdateMode.APPEND
        return self.policy.choose(self.confirmed_version)

    def _drop_session(self) -> None:
        self.log.warning(f"Session {self.code} is gone; dropping local state")
        self.session_lost = True
        self.confirmed_version = None
        self.confirmed_ciphertext = ""
        self.provisional = None
        self.history.clear()
        self.policy.reset()

    # =========================================================================
    # Ledger round-trips
    # =========================================================================

    async def reconcile(self) -> int:
        """Replace provisional state with the ledger's view.

        Returns:
            The confirmed latest version (0 when the session is empty)

        Raises:
            SessionNotFoundError: Session vanished; local state is dropped
            StoreFailure: Ledger unavailable; local state is left as is
        """
        try:
            latest = await self.service.latest_ciphertext(self.code)
            records = await self.service.get_history(self.code)
        except SessionNotFoundError:
            self._drop_session()
            raise

        self.confirmed_version = latest.version
        self.confirmed_ciphertext = latest.ciphertext
        self.provisional = None
        self.history = {r.version: HistoryItem.from_record(r) for r in records}
        self.log.debug(f"Reconciled {self.code} at v{latest.version} ({len(records)} record(s))")
        return latest.version

    async def resurrect_missing(self, local_items: Iterable[HistoryItem] | None = None) -> int:
        """Restore versions this device holds but the ledger lost.

        Args:
            local_items: Items to offer; defaults to this replica's history

        Returns:
            Number of versions the ledger accepted
        """
        items = list(local_items) if local_items is not None else list(self.history.values())
        if not items:
            return 0

        try:
            server_versions = {r.version for r in await self.service.get_history(self.code)}
            missing = [item for item in items if item.version not in server_versions]
            if not missing:
                return 0
            restored = await self.service.restore_history_items(self.code, missing)
        except SessionNotFoundError:
            self._drop_session()
            raise

        await self.reconcile()
        if restored:
            self.log.info(f"Resurrected {restored} version(s) into {self.code}")
        return restored

    async def save(self, plaintext: str | None = None, mode: UpdateMode | None = None) -> UpdateResult:
        """Encrypt and persist the local text, then publish a hint.

        Args:
            plaintext: Text to save; defaults to the pending edit
            mode: Force AMEND or APPEND; defaults to next_update_mode()

        Raises:
            SessionNotFoundError: Session vanished; local state is dropped
            ConflictError: Another writer moved the head; reconcile and retry
            StoreFailure: Ledger unavailable; the text stays pending
        """
        if self.session_lost:
            raise SessionNotFoundError(self.code)
        if plaintext is not None:
            self.pending_text = plaintext
        if self.pending_text is None:
            raise ValueError("Nothing to save")

        if mode is None:
            mode = self.next_update_mode()
        elif mode is UpdateMode.AMEND and not self.confirmed_version:
            mode = UpdateMode.APPEND
        expected = self.confirmed_version if mode is UpdateMode.AMEND else None

        ciphertext = self.cipher.encrypt(self.pending_text)
        try:
            result = await self.service.update_clipboard(
                self.code, ciphertext, mode, expected_version=expected
            )
        except SessionNotFoundError:
            self._drop_session()
            raise
        except ConflictError:
            self.log.info(f"Amend of {self.code} lost a race; reconcile before retrying")
            raise
        except StoreFailure as e:
            self.log.warning(f"Save to {self.code} failed, keeping local text: {e}")
            raise

        self.confirmed_version = result.version
        self.confirmed_ciphertext = ciphertext
        self.history[result.version] = HistoryItem(version=result.version, ciphertext=ciphertext)
        if self.provisional is not None and self.provisional.version <= result.version:
            self.provisional = None
        self.pending_text = None
        self.policy.record_save()

        await self._publish(ciphertext, result.version)
        return result

    async def _publish(self, ciphertext: str, version: int) -> None:
        if self.relay is None:
            return
        try:
            await self.relay.publish(ciphertext, version)
        except RelayError as e:
            self.log.debug(f"Hint for {self.code} v{version} not sent: {e}")
