"""
Activity ledger for in-flight sync operations.

The ledger maps an operation id to its status. The UI reads it to render
spinners and error toasts; every feature shares one ledger instance.

Lifecycle of an entry:
    begin()  -> PENDING
    fail()   -> FAILED        (optional, at most once)
    end()    -> DONE or stays FAILED, and the entry is closed

Invariants:
    - An id is begun at most once; a duplicate begin() is rejected
    - Status changes at most once, from PENDING to DONE or FAILED
    - Entries are replaced as whole objects, never mutated in place
    - Every transition is broadcast on the event bus in the order
      begin -> [fail] -> end
    - Entries are never removed, except by an explicit sweep()

How to change safely:
    - The ledger is injected, never a module global; construct one per
      application and close() it at shutdown
    - New statuses must remain terminal-once
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass
from enum import Enum

from .events import EventBus, EventType

logger = logging.getLogger(__name__)


class OperationKind(str, Enum):
    """Kinds of user-facing sync operations."""

    GET_PROFILES_BY_POSTS = "GET_PROFILES_BY_POSTS"
    SEARCH_PROFILES_BY_FULLNAME = "SEARCH_PROFILES_BY_FULLNAME"
    FIND_FRIENDS_SUGGESTIONS = "FIND_FRIENDS_SUGGESTIONS"
    GET_PROFILE_BY_USERNAME = "GET_PROFILE_BY_USERNAME"
    GET_CURRENT_PROFILE = "GET_CURRENT_PROFILE"
    UPDATE_PROFILE = "UPDATE_PROFILE"
    ADD_FRIEND = "ADD_FRIEND"
    REMOVE_FRIEND = "REMOVE_FRIEND"
    ACCEPT_FRIEND = "ACCEPT_FRIEND"


class ActivityStatus(str, Enum):
    """Status of an activity entry."""

    PENDING = "pending"
    FAILED = "failed"
    DONE = "done"

    @property
    def terminal(self) -> bool:
        return self is not ActivityStatus.PENDING


@dataclass(frozen=True)
class ActivityEntry:
    """Ledger entry for one operation instance.

    Attributes:
        id: Unique operation id
        kind: Operation kind
        status: Current status
        error_message: Message recorded by fail()
        closed: Whether end() has been called
        started_at: Begin timestamp (Unix ms)
        finished_at: End timestamp (Unix ms)
    """

    id: str
    kind: OperationKind
    status: ActivityStatus = ActivityStatus.PENDING
    error_message: str | None = None
    closed: bool = False
    started_at: int = 0
    finished_at: int | None = None


def _now_ms() -> int:
    return int(time.time() * 1000)


class ActivityLedger:
    """Process-wide tracker of sync operations.

    Example:
        >>> ledger = ActivityLedger(bus)
        >>> await ledger.start()
        >>> await ledger.begin(OperationKind.ADD_FRIEND, activity_id)
        >>> await ledger.end(activity_id)
        >>> ledger.get(activity_id).status
        <ActivityStatus.DONE: 'done'>
    """

    def __init__(self, bus: EventBus | None = None) -> None:
        self.bus = bus or EventBus()
        self._entries: dict[str, ActivityEntry] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start accepting operations."""
        self._running = True
        logger.debug("Activity ledger started")

    async def close(self) -> None:
        """Stop the ledger and drop all subscribers."""
        pending = self.pending()
        if pending:
            logger.warning(f"Closing activity ledger with {len(pending)} pending entries")
        self._running = False
        self.bus.clear()
        logger.debug("Activity ledger closed")

    async def begin(self, kind: OperationKind, activity_id: str) -> bool:
        """Insert a pending entry.

        Args:
            kind: Operation kind
            activity_id: Fresh id for this operation instance

        Returns:
            False if the id already exists (nothing is recorded)
        """
        if activity_id in self._entries:
            logger.warning(f"Activity {activity_id} already exists, begin ignored")
            return False

        self._entries[activity_id] = ActivityEntry(
            id=activity_id,
            kind=kind,
            started_at=_now_ms(),
        )
        await self.bus.publish(
            EventType.ACTIVITY_BEGIN,
            kind=kind.value,
            activity_id=activity_id,
        )
        return True

    async def fail(self, kind: OperationKind, activity_id: str, message: str) -> bool:
        """Mark an entry as failed.

        Does not close the entry; callers must still call end().

        Returns:
            False if the entry is unknown or already terminal
        """
        entry = self._entries.get(activity_id)
        if entry is None:
            logger.warning(f"fail() for unknown activity {activity_id}")
            return False
        if entry.status.terminal or entry.closed:
            logger.debug(f"Activity {activity_id} already {entry.status.value}, fail ignored")
            return False

        self._entries[activity_id] = dataclasses.replace(
            entry,
            status=ActivityStatus.FAILED,
            error_message=message,
        )
        logger.info(f"{kind.value} failed: {message}")
        await self.bus.publish(
            EventType.ACTIVITY_FAIL,
            kind=kind.value,
            activity_id=activity_id,
            message=message,
        )
        return True

    async def end(self, activity_id: str) -> bool:
        """Close an entry, marking it DONE unless a failure was recorded.

        Idempotent: a second end() for the same id is ignored.

        Returns:
            False if the entry is unknown or already closed
        """
        entry = self._entries.get(activity_id)
        if entry is None:
            logger.warning(f"end() for unknown activity {activity_id}")
            return False
        if entry.closed:
            logger.debug(f"Activity {activity_id} already closed, end ignored")
            return False

        status = entry.status if entry.status.terminal else ActivityStatus.DONE
        self._entries[activity_id] = dataclasses.replace(
            entry,
            status=status,
            closed=True,
            finished_at=_now_ms(),
        )
        await self.bus.publish(
            EventType.ACTIVITY_END,
            kind=entry.kind.value,
            activity_id=activity_id,
        )
        return True

    def get(self, activity_id: str) -> ActivityEntry | None:
        return self._entries.get(activity_id)

    def entries(self) -> list[ActivityEntry]:
        """All entries in begin order."""
        return list(self._entries.values())

    def pending(self) -> list[ActivityEntry]:
        return [e for e in self._entries.values() if not e.closed]

    def failed(self) -> list[ActivityEntry]:
        return [e for e in self._entries.values() if e.status is ActivityStatus.FAILED]

    def sweep(self) -> int:
        """Remove closed entries.

        Returns:
            Number of entries removed
        """
        closed = [key for key, entry in self._entries.items() if entry.closed]
        for key in closed:
            del self._entries[key]
        return len(closed)
