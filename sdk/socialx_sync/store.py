"""
Graph store capability and in-memory backend.

The decentralized graph database is an external collaborator. The sync
layer only needs a path-addressed key-value capability:
- path_join(): build a Path in the store's addressing syntax
- get(): read the record (or subtree) at a path
- put(): merge a record into a path
- subscribe(): observe writes below a path

Invariants:
    - Values are plain structured records (dicts, lists, scalars); the store
      enforces no schema
    - put() merges dict values key by key; a None value deletes the key
    - get() never returns a live reference into the store

How to change safely:
    - Keep InMemoryGraphStore behaviour aligned with the real store's merge
      semantics, tests rely on it
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from .errors import GraphStoreError
from .paths import Path, Table, resolve

logger = logging.getLogger(__name__)

StoreListener = Callable[[Path, Any], Awaitable[None] | None]


@runtime_checkable
class GraphStore(Protocol):
    """Protocol for the path-addressed graph store."""

    def path_join(self, table: Table, *segments: str) -> Path:
        """Build a path in the store's addressing syntax."""
        ...

    @abstractmethod
    async def get(self, path: Path) -> Any | None:
        """Read the value at a path.

        Returns:
            The value, or None if nothing is stored there
        """
        ...

    @abstractmethod
    async def put(self, path: Path, value: Any) -> None:
        """Merge a value into a path.

        Raises:
            GraphStoreError: If the store rejects the write
        """
        ...

    def subscribe(self, path: Path, listener: StoreListener) -> Callable[[], None]:
        """Observe writes at or below a path.

        Returns:
            Callable that removes the subscription
        """
        ...


class InMemoryGraphStore:
    """In-memory implementation of GraphStore.

    Stores all tables in a nested dictionary. Useful for:
    - Unit and integration tests
    - Local development without a network peer

    Thread safety:
        Uses an asyncio lock around writes. Safe to use from multiple
        coroutines on one event loop.

    Example:
        >>> store = InMemoryGraphStore()
        >>> path = store.path_join(Table.PROFILES, "alice")
        >>> await store.put(path, {"fullName": "Alice"})
        >>> await store.get(path)
        {'fullName': 'Alice'}
    """

    def __init__(self) -> None:
        self._root: dict[str, Any] = {}
        self._lock = asyncio.Lock()
        self._listeners: list[tuple[tuple[str, ...], StoreListener]] = []
        self.reads = 0
        self.writes = 0

    def path_join(self, table: Table, *segments: str) -> Path:
        return resolve(table, *segments)

    def _lookup(self, parts: list[str] | tuple[str, ...]) -> Any | None:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    async def get(self, path: Path) -> Any | None:
        self.reads += 1
        return copy.deepcopy(self._lookup(path.parts))

    async def put(self, path: Path, value: Any) -> None:
        if value is not None and not isinstance(value, (dict, list, str, int, float, bool)):
            raise GraphStoreError(
                f"Unsupported value type {type(value).__name__}",
                path=str(path),
            )

        async with self._lock:
            self.writes += 1
            *parents, key = path.parts
            if value is None:
                # Deleting never creates intermediate records
                parent = self._lookup(parents)
                if isinstance(parent, dict):
                    parent.pop(key, None)
            else:
                node = self._root
                for part in parents:
                    child = node.get(part)
                    if not isinstance(child, dict):
                        child = {}
                        node[part] = child
                    node = child

                if isinstance(value, dict):
                    if not isinstance(node.get(key), dict):
                        node[key] = {}
                    _merge(node[key], value)
                else:
                    node[key] = copy.deepcopy(value)

        logger.debug(f"put {path}")
        await self._notify(path, value)

    def subscribe(self, path: Path, listener: StoreListener) -> Callable[[], None]:
        entry = (path.parts, listener)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    async def _notify(self, path: Path, value: Any) -> None:
        parts = path.parts
        for prefix, listener in list(self._listeners):
            if parts[: len(prefix)] != prefix:
                continue
            try:
                result = listener(path, copy.deepcopy(value))
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(f"Store listener failed for {path}")


def _merge(target: dict[str, Any], patch: dict[str, Any]) -> None:
    """Merge patch into target in place, deleting keys set to None."""
    for key, value in patch.items():
        if value is None:
            target.pop(key, None)
        elif isinstance(value, dict):
            if not isinstance(target.get(key), dict):
                target[key] = {}
            _merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
