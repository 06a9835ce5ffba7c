"""
Cached view of profiles, fed by SYNCED events.

Invariants:
    - Every update replaces a whole snapshot (the current profile, the
      profiles map, the result lists); nothing is patched in place
    - Only SYNCED events change the view, so failed operations leave it
      untouched
"""

from __future__ import annotations

import logging

from .events import EventBus, EventType, SyncEvent
from .ledger import OperationKind
from .models import CurrentUser, Profile, build_current_user
from .session import Identity, is_authenticated

logger = logging.getLogger(__name__)


class ProfileState:
    """Application-wide cached profile view.

    Example:
        >>> state = ProfileState(bus)
        >>> await GetCurrentProfile(context)()
        >>> state.current.alias
        'alice'
    """

    def __init__(self, bus: EventBus) -> None:
        self.current: Profile | None = None
        self.profiles: dict[str, Profile] = {}
        self.search_results: tuple[Profile, ...] = ()
        self.suggestions: tuple[Profile, ...] = ()
        self._unsubscribe = bus.subscribe(self._on_synced, EventType.SYNCED)

    def close(self) -> None:
        self._unsubscribe()

    def _store(self, profiles: list[Profile]) -> None:
        merged = dict(self.profiles)
        merged.update((p.alias, p) for p in profiles)
        self.profiles = merged

    def _on_synced(self, event: SyncEvent) -> None:
        kind = OperationKind(event.kind)
        if kind is OperationKind.GET_CURRENT_PROFILE:
            self.current = event.payload
            self._store([event.payload])
        elif kind is OperationKind.GET_PROFILE_BY_USERNAME:
            self._store([event.payload])
        elif kind is OperationKind.GET_PROFILES_BY_POSTS:
            self._store(event.payload)
        elif kind is OperationKind.SEARCH_PROFILES_BY_FULLNAME:
            self.search_results = tuple(event.payload)
        elif kind is OperationKind.FIND_FRIENDS_SUGGESTIONS:
            self.suggestions = tuple(event.payload)
        else:
            logger.debug(f"No cached view for {kind.value}")

    def current_user(self, identity: Identity | None, gateway_url: str) -> CurrentUser | None:
        """Display record of the signed-in user, once their profile is cached.

        The profile is matched on the account key when the identity carries
        one, then on the alias.
        """
        if not is_authenticated(identity):
            return None
        assert identity is not None
        profile: Profile | None = None
        if identity.pub:
            profile = next((p for p in self.profiles.values() if p.pub == identity.pub), None)
        if profile is None:
            profile = self.profiles.get(identity.alias)
        if profile is None:
            return None
        return build_current_user(identity, profile, gateway_url)
