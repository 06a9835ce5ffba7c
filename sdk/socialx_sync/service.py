"""
SyncService - application entry point of the sync layer.

Wires the shared components once per application:
- EventBus and ActivityLedger (shared by every operation)
- UploadTracker and the transfer client
- Repositories over the graph store
- ProfileState, the cached view fed by SYNCED events

Invariants:
    - One ledger per service; it lives from start() to close()
    - Operations can only run between start() and close()
    - Every public operation method returns the closed ActivityEntry, or
      None when the caller is not authenticated

Example:
    >>> async with SyncService(settings, store=store, session=session) as sync:
    ...     await sync.get_current_profile()
    ...     sync.state.current
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

import json_log_formatter

from .config import Settings
from .events import EventBus, EventHandler, EventType
from .ledger import ActivityEntry, ActivityLedger
from .models import (
    CurrentUser,
    FriendInput,
    FriendsSuggestionsInput,
    Post,
    SearchProfilesInput,
    UpdateProfileInput,
)
from .operations import (
    AcceptFriend,
    AddFriend,
    FindFriendsSuggestions,
    GetCurrentProfile,
    GetProfileByUsername,
    GetProfilesByPosts,
    RemoveFriend,
    SearchProfilesByFullName,
    SyncContext,
    UpdateCurrentProfile,
)
from .repository import PostsRepository, ProfilesRepository
from .session import InMemorySession, Session
from .state import ProfileState
from .store import GraphStore, InMemoryGraphStore
from .transfer import HttpTransferClient, Transfer
from .uploads import UploadTracker

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure logging based on configuration.

    Args:
        settings: Sync layer settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class SyncService:
    """Owns the shared sync components and exposes every operation."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: GraphStore | None = None,
        session: Session | None = None,
        transfer: Transfer | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            settings: Configuration (loaded from env if not provided)
            store: Graph store client (in-memory store if not provided)
            session: Session capability (empty in-memory session if not provided)
            transfer: Transfer subsystem (HTTP client on settings.transfer_url
                if not provided)
        """
        self.settings = settings or Settings()
        self.store = store or InMemoryGraphStore()
        self.session = session or InMemorySession()

        self._owns_transfer = transfer is None
        self.transfer: Transfer = transfer or HttpTransferClient(
            self.settings.transfer_url,
            chunk_size=self.settings.upload_chunk_size,
            timeout=self.settings.upload_timeout,
        )

        self.bus = EventBus(history_size=self.settings.event_history_size)
        self.ledger = ActivityLedger(self.bus)
        self.uploads = UploadTracker(self.bus)
        self.profiles = ProfilesRepository(self.store, self.session)
        self.posts = PostsRepository(self.store, self.session)
        self.context = SyncContext(
            profiles=self.profiles,
            session=self.session,
            ledger=self.ledger,
            uploads=self.uploads,
            transfer=self.transfer,
        )
        self.state: ProfileState | None = None

    async def start(self) -> None:
        if self.ledger.is_running:
            logger.warning("SyncService already running")
            return
        await self.ledger.start()
        self.state = ProfileState(self.bus)
        logger.info("SyncService started")

    async def close(self) -> None:
        if not self.ledger.is_running:
            return
        if self._owns_transfer and isinstance(self.transfer, HttpTransferClient):
            await self.transfer.close()
        if self.state is not None:
            self.state.close()
        await self.ledger.close()
        logger.info("SyncService stopped")

    async def __aenter__(self) -> SyncService:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _ensure_running(self) -> SyncContext:
        if not self.ledger.is_running:
            raise RuntimeError("SyncService not started. Call start() first.")
        return self.context

    def subscribe(self, handler: EventHandler, *types: EventType) -> Callable[[], None]:
        """Subscribe to the event stream (see EventBus.subscribe)."""
        return self.bus.subscribe(handler, *types)

    @property
    def current_user(self) -> CurrentUser | None:
        if self.state is None:
            return None
        return self.state.current_user(self.session.current_identity(), self.settings.gateway_url)

    # Operations

    async def get_profiles_by_posts(self, posts: Iterable[Post]) -> ActivityEntry | None:
        return await GetProfilesByPosts(self._ensure_running())(list(posts))

    async def search_profiles_by_full_name(
        self,
        term: str,
        max_results: int | None = None,
    ) -> ActivityEntry | None:
        payload = SearchProfilesInput(term=term, maxResults=max_results)
        return await SearchProfilesByFullName(self._ensure_running())(payload)

    async def find_friends_suggestions(self, max_results: int = 10) -> ActivityEntry | None:
        payload = FriendsSuggestionsInput(maxResults=max_results)
        return await FindFriendsSuggestions(self._ensure_running())(payload)

    async def get_profile_by_username(self, username: str) -> ActivityEntry | None:
        return await GetProfileByUsername(self._ensure_running())(username)

    async def get_current_profile(self) -> ActivityEntry | None:
        return await GetCurrentProfile(self._ensure_running())()

    async def update_current_profile(
        self,
        update: UpdateProfileInput | None = None,
        **fields: Any,
    ) -> ActivityEntry | None:
        """Update the caller's profile.

        Accepts either an UpdateProfileInput or keyword fields
        (``full_name=...``, ``avatar=...``).
        """
        payload = update or UpdateProfileInput(**fields)
        return await UpdateCurrentProfile(self._ensure_running())(payload)

    async def add_friend(self, username: str) -> ActivityEntry | None:
        return await AddFriend(self._ensure_running())(FriendInput(username=username))

    async def remove_friend(self, username: str) -> ActivityEntry | None:
        return await RemoveFriend(self._ensure_running())(FriendInput(username=username))

    async def accept_friend(self, username: str) -> ActivityEntry | None:
        return await AcceptFriend(self._ensure_running())(FriendInput(username=username))

    async def abort_upload(self, local_path: str) -> bool:
        """Abort the in-flight upload of a local file."""
        return await self.uploads.abort(local_path)
