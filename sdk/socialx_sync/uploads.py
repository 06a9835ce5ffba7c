"""
Upload state machine for binary payloads.

An upload goes through three phases:
1. Bootstrap: the transfer is accepted and an upload id is assigned;
   record progress 0
2. Progress: every progress callback overwrites the record
3. Completion: the response is parsed into a content hash; record
   progress 100, done, hash

States:
    NOT_STARTED -> IN_PROGRESS (0..99) -> COMPLETED (100, hash)
                                       -> ABORTED

Invariants:
    - Records are keyed by local path and replaced as whole objects; a new
      upload of the same path supersedes the previous record
    - done=True implies a non-empty hash and progress 100
    - Callers may rely on run() returning only after the COMPLETED record
      has been written
    - An aborted upload never reaches phase 3
"""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass
from enum import Enum

from .errors import MalformedResponseError, UploadAbortedError
from .events import EventBus, EventType
from .transfer import Transfer

logger = logging.getLogger(__name__)


class UploadPhase(str, Enum):
    """Phase of an upload."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class UploadStatus:
    """Upload record for one local file.

    Attributes:
        path: Local file reference
        upload_id: Id assigned by the transfer subsystem
        progress: Percentage sent (0-100)
        aborting: Cancellation was requested
        done: Transfer completed and hash is known
        hash: Content hash returned by the storage node
        phase: Current phase
    """

    path: str
    upload_id: str | None = None
    progress: int = 0
    aborting: bool = False
    done: bool = False
    hash: str = ""
    phase: UploadPhase = UploadPhase.NOT_STARTED


def parse_upload_hash(response_body: str) -> str:
    """Extract the content hash from a storage node response.

    Raises:
        MalformedResponseError: If the body is not JSON or has no Hash
    """
    try:
        data = json.loads(response_body)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedResponseError(f"Upload response is not valid JSON: {e}", body=response_body) from e

    content_hash = data.get("Hash") if isinstance(data, dict) else None
    if not isinstance(content_hash, str) or not content_hash:
        raise MalformedResponseError("Upload response has no Hash", body=response_body)
    return content_hash


class UploadTracker:
    """Latest upload record per local path."""

    def __init__(self, bus: EventBus) -> None:
        self.bus = bus
        self._records: dict[str, UploadStatus] = {}
        self._machines: dict[str, UploadStateMachine] = {}

    def register(self, machine: UploadStateMachine) -> None:
        self._machines[machine.local_path] = machine

    def release(self, machine: UploadStateMachine) -> None:
        """Forget a machine that is no longer in flight; its record stays."""
        if self._machines.get(machine.local_path) is machine:
            del self._machines[machine.local_path]

    def active_paths(self) -> list[str]:
        """Local paths with an upload that can still be aborted."""
        return list(self._machines)

    async def set_status(self, status: UploadStatus) -> None:
        self._records[status.path] = status
        await self.bus.publish(EventType.UPLOAD_STATUS, payload=status)

    def get(self, path: str) -> UploadStatus | None:
        return self._records.get(path)

    def records(self) -> list[UploadStatus]:
        return list(self._records.values())

    async def abort(self, path: str) -> bool:
        """Abort the latest upload of a path.

        Returns:
            False if there is no upload in flight for the path
        """
        machine = self._machines.get(path)
        if machine is None or machine.phase in (UploadPhase.COMPLETED, UploadPhase.ABORTED):
            return False
        await machine.abort()
        return True


class UploadStateMachine:
    """Drives one file transfer and records each phase.

    Example:
        >>> machine = UploadStateMachine("/tmp/avatar.jpg", tracker, transfer)
        >>> content_hash = await machine.run()
        >>> tracker.get("/tmp/avatar.jpg").done
        True
    """

    def __init__(self, local_path: str, tracker: UploadTracker, transfer: Transfer) -> None:
        self.local_path = local_path
        self.tracker = tracker
        self.transfer = transfer
        self._status = UploadStatus(path=local_path)
        tracker.register(self)

    @property
    def status(self) -> UploadStatus:
        return self._status

    @property
    def phase(self) -> UploadPhase:
        return self._status.phase

    async def _record(self, **changes: object) -> None:
        self._status = dataclasses.replace(self._status, **changes)
        await self.tracker.set_status(self._status)

    async def _on_start(self, upload_id: str) -> None:
        await self._record(
            upload_id=upload_id,
            progress=0,
            done=False,
            hash="",
            phase=UploadPhase.IN_PROGRESS,
        )
        if self._status.aborting:
            await self.transfer.cancel(upload_id)

    async def _on_progress(self, upload_id: str, progress: int) -> None:
        if self._status.phase is not UploadPhase.IN_PROGRESS:
            return
        await self._record(
            upload_id=upload_id,
            progress=max(0, min(99, int(progress))),
            done=False,
        )

    async def run(self) -> str:
        """Run the transfer to completion.

        Returns:
            The content hash

        Raises:
            UploadAbortedError: If abort() was called before completion
            MalformedResponseError: If the response carries no hash
            TransferError: If the transfer fails
        """
        if self._status.phase is not UploadPhase.NOT_STARTED:
            raise RuntimeError(f"Upload of {self.local_path} already {self._status.phase.value}")

        try:
            try:
                result = await self.transfer.upload(self.local_path, self._on_start, self._on_progress)
            except UploadAbortedError:
                await self._record(phase=UploadPhase.ABORTED, done=False)
                raise

            if self._status.aborting:
                await self._record(phase=UploadPhase.ABORTED, done=False)
                raise UploadAbortedError(self.local_path, result.upload_id)

            content_hash = parse_upload_hash(result.response_body)
            await self._record(
                upload_id=result.upload_id,
                progress=100,
                done=True,
                hash=content_hash,
                phase=UploadPhase.COMPLETED,
            )
        finally:
            self.tracker.release(self)

        logger.info(f"Upload of {self.local_path} completed: {content_hash}")
        return content_hash

    async def abort(self) -> None:
        """Request cancellation.

        Sets the aborting flag and asks the transfer to stop. The upload ends
        in ABORTED and run() raises UploadAbortedError.
        """
        if self._status.phase in (UploadPhase.COMPLETED, UploadPhase.ABORTED):
            return
        await self._record(aborting=True)
        if self._status.upload_id:
            await self.transfer.cancel(self._status.upload_id)
