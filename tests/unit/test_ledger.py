"""
Unit tests for the activity ledger.

Tests cover:
- begin/fail/end transitions
- Terminal state idempotency
- Event ordering
- Lifecycle and queries
"""

import dataclasses

import pytest

from socialx_sync.events import EventBus, EventType
from socialx_sync.ledger import ActivityLedger, ActivityStatus, OperationKind


class TestActivityLedger:
    """Tests for ActivityLedger."""

    @pytest.fixture
    def bus(self):
        return EventBus(history_size=100)

    @pytest.fixture
    def ledger(self, bus):
        return ActivityLedger(bus)

    @pytest.mark.asyncio
    async def test_begin_creates_pending_entry(self, ledger):
        """begin() inserts a pending entry."""
        assert await ledger.begin(OperationKind.ADD_FRIEND, "op1")

        entry = ledger.get("op1")
        assert entry.kind is OperationKind.ADD_FRIEND
        assert entry.status is ActivityStatus.PENDING
        assert entry.closed is False
        assert entry.started_at > 0

    @pytest.mark.asyncio
    async def test_duplicate_begin_is_rejected(self, ledger, bus):
        """A second begin() with the same id records nothing."""
        await ledger.begin(OperationKind.ADD_FRIEND, "op1")
        assert await ledger.begin(OperationKind.REMOVE_FRIEND, "op1") is False

        assert ledger.get("op1").kind is OperationKind.ADD_FRIEND
        assert [e.type for e in bus.history] == [EventType.ACTIVITY_BEGIN]

    @pytest.mark.asyncio
    async def test_end_marks_done(self, ledger):
        await ledger.begin(OperationKind.GET_CURRENT_PROFILE, "op1")
        assert await ledger.end("op1")

        entry = ledger.get("op1")
        assert entry.status is ActivityStatus.DONE
        assert entry.closed is True
        assert entry.finished_at is not None

    @pytest.mark.asyncio
    async def test_fail_then_end_keeps_failure(self, ledger):
        """end() after fail() closes the entry but keeps FAILED."""
        await ledger.begin(OperationKind.UPDATE_PROFILE, "op1")
        await ledger.fail(OperationKind.UPDATE_PROFILE, "op1", "network down")
        assert ledger.get("op1").closed is False

        await ledger.end("op1")

        entry = ledger.get("op1")
        assert entry.status is ActivityStatus.FAILED
        assert entry.error_message == "network down"
        assert entry.closed is True

    @pytest.mark.asyncio
    async def test_transitions_broadcast_in_order(self, ledger, bus):
        """Events follow begin -> fail -> end."""
        await ledger.begin(OperationKind.UPDATE_PROFILE, "op1")
        await ledger.fail(OperationKind.UPDATE_PROFILE, "op1", "boom")
        await ledger.end("op1")

        events = list(bus.history)
        assert [e.type for e in events] == [
            EventType.ACTIVITY_BEGIN,
            EventType.ACTIVITY_FAIL,
            EventType.ACTIVITY_END,
        ]
        assert all(e.activity_id == "op1" for e in events)
        assert events[1].message == "boom"
        assert events[0].sequence < events[1].sequence < events[2].sequence

    @pytest.mark.asyncio
    async def test_terminal_state_accepts_no_transition(self, ledger, bus):
        """Once DONE, fail() and end() are ignored."""
        await ledger.begin(OperationKind.ADD_FRIEND, "op1")
        await ledger.end("op1")
        done = ledger.get("op1")

        assert await ledger.fail(OperationKind.ADD_FRIEND, "op1", "late") is False
        assert await ledger.end("op1") is False

        assert ledger.get("op1") == done
        assert len(bus.history) == 2

    @pytest.mark.asyncio
    async def test_second_fail_is_ignored(self, ledger):
        await ledger.begin(OperationKind.ADD_FRIEND, "op1")
        await ledger.fail(OperationKind.ADD_FRIEND, "op1", "first")
        assert await ledger.fail(OperationKind.ADD_FRIEND, "op1", "second") is False

        assert ledger.get("op1").error_message == "first"

    @pytest.mark.asyncio
    async def test_unknown_ids_are_ignored(self, ledger, bus):
        assert await ledger.fail(OperationKind.ADD_FRIEND, "missing", "x") is False
        assert await ledger.end("missing") is False
        assert len(bus.history) == 0

    @pytest.mark.asyncio
    async def test_entries_are_replaced_not_mutated(self, ledger):
        """A reader holding an entry keeps a consistent snapshot."""
        await ledger.begin(OperationKind.ADD_FRIEND, "op1")
        before = ledger.get("op1")

        await ledger.end("op1")

        assert before.status is ActivityStatus.PENDING
        with pytest.raises(dataclasses.FrozenInstanceError):
            before.status = ActivityStatus.DONE  # type: ignore[misc]

    @pytest.mark.asyncio
    async def test_concurrent_entries_do_not_collide(self, ledger):
        await ledger.begin(OperationKind.SEARCH_PROFILES_BY_FULLNAME, "a")
        await ledger.begin(OperationKind.UPDATE_PROFILE, "b")
        await ledger.fail(OperationKind.UPDATE_PROFILE, "b", "boom")
        await ledger.end("a")

        assert ledger.get("a").status is ActivityStatus.DONE
        assert ledger.get("b").status is ActivityStatus.FAILED
        assert [e.id for e in ledger.pending()] == ["b"]
        assert [e.id for e in ledger.failed()] == ["b"]

    @pytest.mark.asyncio
    async def test_sweep_removes_closed_entries(self, ledger):
        await ledger.begin(OperationKind.ADD_FRIEND, "a")
        await ledger.begin(OperationKind.ADD_FRIEND, "b")
        await ledger.end("a")

        assert ledger.sweep() == 1
        assert [e.id for e in ledger.entries()] == ["b"]

    @pytest.mark.asyncio
    async def test_lifecycle(self, ledger, bus):
        """close() stops the ledger and drops subscribers."""
        bus.subscribe(lambda event: None)
        assert not ledger.is_running

        await ledger.start()
        assert ledger.is_running

        await ledger.close()
        assert not ledger.is_running
        assert bus.subscriber_count == 0
