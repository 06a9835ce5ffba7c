"""
Shared fixtures for the sync layer tests.

Everything runs against the in-memory graph store and a scripted fake
transfer, so no network is needed.
"""

from __future__ import annotations

import pytest

from socialx_sync.errors import UploadAbortedError
from socialx_sync.events import EventBus
from socialx_sync.ledger import ActivityLedger
from socialx_sync.operations import SyncContext
from socialx_sync.repository import PostsRepository, ProfilesRepository
from socialx_sync.session import InMemorySession
from socialx_sync.store import InMemoryGraphStore
from socialx_sync.transfer import TransferResult
from socialx_sync.uploads import UploadTracker


class FakeTransfer:
    """Scripted transfer subsystem.

    Reports each value of progress_steps, then returns response_body (or
    raises error). cancel() makes the next progress step raise
    UploadAbortedError.
    """

    def __init__(
        self,
        response_body: str = '{"Name": "avatar.jpg", "Hash": "QmAvatarHash", "Size": "1024"}',
        progress_steps: tuple[int, ...] = (25, 50, 100),
        error: Exception | None = None,
    ) -> None:
        self.response_body = response_body
        self.progress_steps = progress_steps
        self.error = error
        self.uploads: list[str] = []
        self.cancelled: list[str] = []
        self.on_step = None

    async def upload(self, local_path, on_start, on_progress):
        self.uploads.append(local_path)
        upload_id = f"upload-{len(self.uploads)}"
        await on_start(upload_id)
        for progress in self.progress_steps:
            if upload_id in self.cancelled:
                raise UploadAbortedError(local_path, upload_id)
            await on_progress(upload_id, progress)
            if self.on_step is not None:
                await self.on_step(progress)
        if self.error is not None:
            raise self.error
        return TransferResult(upload_id=upload_id, response_body=self.response_body)

    async def cancel(self, upload_id: str) -> None:
        self.cancelled.append(upload_id)


@pytest.fixture
def store():
    return InMemoryGraphStore()


@pytest.fixture
def session():
    """Session logged in as alice."""
    session = InMemorySession()
    session.login("alice", pub="pk_alice")
    return session


@pytest.fixture
def bus():
    return EventBus(history_size=1000)


@pytest.fixture
def ledger(bus):
    return ActivityLedger(bus)


@pytest.fixture
def transfer():
    return FakeTransfer()


@pytest.fixture
def profiles(store, session):
    return ProfilesRepository(store, session)


@pytest.fixture
def posts(store, session):
    return PostsRepository(store, session)


@pytest.fixture
def context(profiles, session, ledger, bus, transfer):
    return SyncContext(
        profiles=profiles,
        session=session,
        ledger=ledger,
        uploads=UploadTracker(bus),
        transfer=transfer,
    )
