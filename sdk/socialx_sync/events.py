"""
Event stream produced by the sync layer.

Every sync operation and upload reports its progress as events:
- INTENT: an operation was requested (optimistic UI hook)
- ACTIVITY_BEGIN / ACTIVITY_FAIL / ACTIVITY_END: ledger transitions
- SYNCED: normalized result of a successful operation
- UPLOAD_STATUS: new upload record

Invariants:
    - Events are delivered to subscribers in publish order
    - Sequence numbers are strictly increasing per bus
    - A failing subscriber never prevents delivery to the others
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events emitted by the sync layer."""

    INTENT = "intent"
    ACTIVITY_BEGIN = "activity_begin"
    ACTIVITY_FAIL = "activity_fail"
    ACTIVITY_END = "activity_end"
    SYNCED = "synced"
    UPLOAD_STATUS = "upload_status"


@dataclass(frozen=True)
class SyncEvent:
    """A single event on the bus.

    Attributes:
        type: Event type
        kind: Operation kind the event belongs to (if any)
        activity_id: Ledger entry id (if any)
        payload: Operation input, result or upload record
        message: Error message for ACTIVITY_FAIL
        sequence: Position in the bus's stream
    """

    type: EventType
    kind: str | None = None
    activity_id: str | None = None
    payload: Any = None
    message: str | None = None
    sequence: int = 0


EventHandler = Callable[[SyncEvent], Awaitable[None] | None]


class EventBus:
    """In-process publish/subscribe bus for sync events.

    Subscribers may be plain functions or coroutine functions. They can
    subscribe to specific event types or to everything.

    Example:
        >>> bus = EventBus(history_size=100)
        >>> bus.subscribe(print, EventType.SYNCED)
        >>> await bus.publish(EventType.SYNCED, kind="GET_CURRENT_PROFILE", payload=profile)
    """

    def __init__(self, history_size: int = 0) -> None:
        """Initialize the bus.

        Args:
            history_size: How many past events to retain (0 disables history)
        """
        self._subscribers: list[tuple[frozenset[EventType] | None, EventHandler]] = []
        self._sequence = itertools.count(1)
        self.history: Deque[SyncEvent] = deque(maxlen=history_size or None)
        self._keep_history = history_size > 0

    def subscribe(self, handler: EventHandler, *types: EventType) -> Callable[[], None]:
        """Subscribe a handler.

        Args:
            handler: Callable receiving each SyncEvent
            *types: Event types to receive (all types if omitted)

        Returns:
            Callable that removes the subscription
        """
        entry = (frozenset(types) if types else None, handler)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def clear(self) -> None:
        """Drop all subscribers."""
        self._subscribers.clear()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(
        self,
        event_type: EventType,
        *,
        kind: str | None = None,
        activity_id: str | None = None,
        payload: Any = None,
        message: str | None = None,
    ) -> SyncEvent:
        """Publish an event to all matching subscribers.

        Returns:
            The published event
        """
        event = SyncEvent(
            type=event_type,
            kind=kind,
            activity_id=activity_id,
            payload=payload,
            message=message,
            sequence=next(self._sequence),
        )
        if self._keep_history:
            self.history.append(event)

        logger.debug(f"Publishing {event_type.value} kind={kind} activity={activity_id}")

        for types, handler in list(self._subscribers):
            if types is not None and event_type not in types:
                continue
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(f"Error in event handler for {event_type.value}")

        return event
