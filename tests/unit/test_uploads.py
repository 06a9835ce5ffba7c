"""
Unit tests for the upload state machine.

Tests cover:
- Three-phase protocol records
- Hash parsing
- Abort path
- Superseding records for the same path
"""

import pytest

from socialx_sync.errors import MalformedResponseError, TransferError, UploadAbortedError
from socialx_sync.events import EventBus, EventType
from socialx_sync.uploads import (
    UploadPhase,
    UploadStateMachine,
    UploadTracker,
    parse_upload_hash,
)

AVATAR = "/data/local/avatar.jpg"


class TestParseUploadHash:
    def test_reads_hash(self):
        assert parse_upload_hash('{"Name": "a.jpg", "Hash": "QmX"}') == "QmX"

    @pytest.mark.parametrize("body", ["not json", '{"Name": "a.jpg"}', '{"Hash": ""}', '["QmX"]'])
    def test_malformed(self, body):
        with pytest.raises(MalformedResponseError):
            parse_upload_hash(body)


class TestUploadStateMachine:
    """Tests for UploadStateMachine."""

    @pytest.fixture
    def bus(self):
        return EventBus(history_size=100)

    @pytest.fixture
    def tracker(self, bus):
        return UploadTracker(bus)

    @pytest.mark.asyncio
    async def test_phases_are_recorded_in_order(self, tracker, bus, transfer):
        """Bootstrap, progress and completion each write a record."""
        machine = UploadStateMachine(AVATAR, tracker, transfer)

        content_hash = await machine.run()

        assert content_hash == "QmAvatarHash"
        records = [e.payload for e in bus.history if e.type is EventType.UPLOAD_STATUS]
        assert [r.progress for r in records] == [0, 25, 50, 99, 100]
        assert [r.done for r in records] == [False, False, False, False, True]
        assert all(r.upload_id == "upload-1" for r in records)
        assert all(r.hash == "" for r in records[:-1])
        assert records[-1].hash == "QmAvatarHash"

    @pytest.mark.asyncio
    async def test_completed_record(self, tracker, transfer):
        machine = UploadStateMachine(AVATAR, tracker, transfer)
        await machine.run()

        status = tracker.get(AVATAR)
        assert status.phase is UploadPhase.COMPLETED
        assert status.done is True
        assert status.progress == 100
        assert status.aborting is False
        assert machine.status == status

    @pytest.mark.asyncio
    async def test_run_only_once(self, tracker, transfer):
        machine = UploadStateMachine(AVATAR, tracker, transfer)
        await machine.run()

        with pytest.raises(RuntimeError):
            await machine.run()

    @pytest.mark.asyncio
    async def test_malformed_response_never_completes(self, tracker, transfer):
        transfer.response_body = "<html>bad gateway</html>"
        machine = UploadStateMachine(AVATAR, tracker, transfer)

        with pytest.raises(MalformedResponseError):
            await machine.run()

        assert tracker.get(AVATAR).done is False
        assert tracker.get(AVATAR).hash == ""

    @pytest.mark.asyncio
    async def test_transfer_error_propagates(self, tracker, transfer):
        transfer.error = TransferError("connection reset", local_path=AVATAR)
        machine = UploadStateMachine(AVATAR, tracker, transfer)

        with pytest.raises(TransferError):
            await machine.run()

        assert tracker.get(AVATAR).phase is UploadPhase.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_abort_mid_transfer(self, tracker, transfer):
        """abort() cancels the transfer and skips completion."""
        machine = UploadStateMachine(AVATAR, tracker, transfer)

        async def abort_at(progress):
            if progress == 25:
                await tracker.abort(AVATAR)

        transfer.on_step = abort_at

        with pytest.raises(UploadAbortedError):
            await machine.run()

        status = tracker.get(AVATAR)
        assert status.phase is UploadPhase.ABORTED
        assert status.aborting is True
        assert status.done is False
        assert status.hash == ""
        assert transfer.cancelled == ["upload-1"]

    @pytest.mark.asyncio
    async def test_abort_after_transfer_finished_still_aborts(self, tracker, transfer):
        """A transfer that ignores cancel() still never reaches COMPLETED."""
        machine = UploadStateMachine(AVATAR, tracker, transfer)

        async def abort_at(progress):
            if progress == 100:
                await machine.abort()

        transfer.on_step = abort_at

        with pytest.raises(UploadAbortedError):
            await machine.run()

        assert machine.phase is UploadPhase.ABORTED

    @pytest.mark.asyncio
    async def test_abort_before_start(self, tracker, transfer):
        machine = UploadStateMachine(AVATAR, tracker, transfer)
        await machine.abort()

        with pytest.raises(UploadAbortedError):
            await machine.run()

        assert transfer.cancelled == ["upload-1"]

    @pytest.mark.asyncio
    async def test_abort_unknown_or_finished_path(self, tracker, transfer):
        assert await tracker.abort(AVATAR) is False

        await UploadStateMachine(AVATAR, tracker, transfer).run()

        assert await tracker.abort(AVATAR) is False

    @pytest.mark.asyncio
    async def test_new_upload_supersedes_record(self, tracker, transfer):
        await UploadStateMachine(AVATAR, tracker, transfer).run()
        transfer.response_body = '{"Hash": "QmSecond"}'

        await UploadStateMachine(AVATAR, tracker, transfer).run()

        assert len(tracker.records()) == 1
        assert tracker.get(AVATAR).hash == "QmSecond"
        assert tracker.get(AVATAR).upload_id == "upload-2"

    @pytest.mark.asyncio
    async def test_finished_machines_are_released(self, tracker, transfer):
        """Only in-flight uploads stay abortable; records are kept."""
        in_flight = []

        async def observe(progress):
            in_flight.append(tracker.active_paths())

        transfer.on_step = observe
        await UploadStateMachine(AVATAR, tracker, transfer).run()

        assert in_flight[0] == [AVATAR]
        assert tracker.active_paths() == []
        assert tracker.get(AVATAR).done is True

    @pytest.mark.asyncio
    async def test_failed_machines_are_released(self, tracker, transfer):
        transfer.response_body = "not json"

        with pytest.raises(MalformedResponseError):
            await UploadStateMachine(AVATAR, tracker, transfer).run()

        assert tracker.active_paths() == []
        assert tracker.get(AVATAR) is not None

    @pytest.mark.asyncio
    async def test_release_keeps_newer_machine(self, tracker, transfer):
        first = UploadStateMachine(AVATAR, tracker, transfer)
        second = UploadStateMachine(AVATAR, tracker, transfer)

        tracker.release(first)

        assert tracker.active_paths() == [AVATAR]
        assert await tracker.abort(AVATAR) is True
        assert second.status.aborting is True
