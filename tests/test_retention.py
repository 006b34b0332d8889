"""
Tests for history retention when history is disabled.
"""

from clipboard_sync.ledger import RetentionPolicy
from clipboard_sync.protocol import HistoryItem, LatestCiphertext, UpdateMode


async def versions_of(service, code) -> list[tuple[int, str]]:
    return [(r.version, r.ciphertext) for r in await service.get_history(code)]


async def fill(service, code, count) -> None:
    for i in range(1, count + 1):
        await service.update_clipboard(code, f"ct{i}", UpdateMode.APPEND)


class TestToggleOff:
    async def test_prunes_to_last_record(self, service, session_code):
        await fill(service, session_code, 4)

        await service.toggle_history(session_code)

        assert await versions_of(service, session_code) == [(4, "ct4")]
        assert await service.latest_ciphertext(session_code) == LatestCiphertext(4, "ct4")

    async def test_next_append_continues_numbering(self, service, session_code):
        await fill(service, session_code, 3)
        await service.toggle_history(session_code)

        result = await service.update_clipboard(session_code, "ct4", UpdateMode.APPEND)

        assert result.version == 4
        assert await versions_of(service, session_code) == [(4, "ct4")]

    async def test_empty_session(self, service, session_code):
        await service.toggle_history(session_code)
        assert await service.get_history(session_code) == []

    async def test_head_record_vanished_keeps_max_survivor(self, service, session_code, store):
        await fill(service, session_code, 3)
        async with store.transaction() as tx:
            await tx.delete_version(session_code, 3)

        await service.toggle_history(session_code)

        assert await versions_of(service, session_code) == [(2, "ct2")]
        assert await service.latest_ciphertext(session_code) == LatestCiphertext(2, "ct2")

    async def test_reenable_does_not_restore(self, service, session_code):
        await fill(service, session_code, 3)
        await service.toggle_history(session_code)
        await service.toggle_history(session_code)

        assert await versions_of(service, session_code) == [(3, "ct3")]

        await service.update_clipboard(session_code, "ct4", UpdateMode.APPEND)
        assert await versions_of(service, session_code) == [(3, "ct3"), (4, "ct4")]


class TestWhileDisabled:
    async def test_amend_patches_single_record(self, service, session_code):
        await fill(service, session_code, 1)
        await service.toggle_history(session_code)

        result = await service.update_clipboard(session_code, "ct1b", UpdateMode.AMEND)

        assert result.version == 1
        assert await versions_of(service, session_code) == [(1, "ct1b")]

    async def test_repeated_appends_keep_one_record(self, service, session_code):
        await service.toggle_history(session_code)
        for i in range(1, 6):
            await service.update_clipboard(session_code, f"ct{i}", UpdateMode.APPEND)
            assert len(await service.get_history(session_code)) == 1

        assert await service.latest_ciphertext(session_code) == LatestCiphertext(5, "ct5")

    async def test_restore_collapses_to_head(self, service, session_code):
        await fill(service, session_code, 2)
        await service.toggle_history(session_code)

        restored = await service.restore_history_items(
            session_code, [HistoryItem(1, "ct1"), HistoryItem(5, "ct5")]
        )

        assert restored == 1
        assert await versions_of(service, session_code) == [(5, "ct5")]
        assert await service.latest_ciphertext(session_code) == LatestCiphertext(5, "ct5")

    async def test_restore_below_head_counts_nothing(self, service, session_code):
        await fill(service, session_code, 3)
        await service.toggle_history(session_code)

        restored = await service.restore_history_items(session_code, [HistoryItem(1, "ct1")])

        assert restored == 0
        assert await versions_of(service, session_code) == [(3, "ct3")]


class TestRetentionPolicy:
    async def test_apply_skips_when_history_enabled(self, service, session_code, store):
        await fill(service, session_code, 3)
        policy = RetentionPolicy()

        async with store.transaction() as tx:
            session = await tx.get_session_by_code(session_code)
            assert await policy.apply(tx, session) == 0

        assert len(await service.get_history(session_code)) == 3

    async def test_collapse_reports_pruned_count(self, service, session_code, store):
        await fill(service, session_code, 3)
        policy = RetentionPolicy()

        async with store.transaction() as tx:
            session = await tx.get_session_by_code(session_code)
            assert await policy.collapse(tx, session) == 2
            assert session.last_version == 3
