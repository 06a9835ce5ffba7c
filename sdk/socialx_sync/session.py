"""
Session capability consumed by the sync layer.

The session subsystem owns authentication. The sync layer only reads the
current identity; a missing identity or an empty alias means "not
authenticated" and every sync operation becomes a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Authenticated identity.

    Attributes:
        alias: Username in the graph store
        pub: Public key of the account
    """

    alias: str
    pub: str = ""


@runtime_checkable
class Session(Protocol):
    """Protocol for the session capability."""

    def current_identity(self) -> Identity | None:
        """Return the current identity, or None when logged out."""
        ...


def is_authenticated(identity: Identity | None) -> bool:
    """Whether an identity passes the auth gate."""
    return identity is not None and bool(identity.alias)


class InMemorySession:
    """Session holding a single identity in memory.

    Useful for tests and local development.

    Example:
        >>> session = InMemorySession()
        >>> session.login("alice", pub="pk_alice")
        >>> session.current_identity().alias
        'alice'
    """

    def __init__(self, identity: Identity | None = None) -> None:
        self._identity = identity

    def current_identity(self) -> Identity | None:
        return self._identity

    def login(self, alias: str, pub: str = "") -> Identity:
        self._identity = Identity(alias=alias, pub=pub)
        logger.debug(f"Session logged in as {alias}")
        return self._identity

    def logout(self) -> None:
        self._identity = None
        logger.debug("Session logged out")
