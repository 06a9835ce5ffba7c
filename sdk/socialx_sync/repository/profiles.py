"""
Profiles repository over the graph store.

Layout:
    profiles.<alias>                          profile record
    profiles.<alias>.friends.<other>          accepted friend edge
    profiles.<alias>.friendRequests.<other>   pending request from <other>

Invariants:
    - Friend edges are always written in both directions
    - Every call raises NotAuthenticatedError without a session, before
      touching the store
    - Reads return normalized Profile models, never raw records
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from typing import Any

from ..errors import NotAuthenticatedError, NotFoundError, SyncError
from ..models import Post, Profile
from ..paths import (
    Table,
    friend_requests_by_username,
    friends_by_username,
    profile_by_username,
    resolve,
)
from ..session import Identity, Session, is_authenticated
from ..store import GraphStore

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_RESULTS = 10


def _now_ms() -> int:
    return int(time.time() * 1000)


class ProfilesRepository:
    """Remote profile operations.

    Example:
        >>> profiles = ProfilesRepository(store, session)
        >>> await profiles.add_friend("bob")
        >>> (await profiles.get_profile_by_username("bob")).friend_requests
        ['alice']
    """

    def __init__(self, store: GraphStore, session: Session) -> None:
        self.store = store
        self.session = session

    def _me(self) -> Identity:
        identity = self.session.current_identity()
        if not is_authenticated(identity):
            raise NotAuthenticatedError()
        assert identity is not None
        return identity

    async def _all_records(self) -> dict[str, Any]:
        records = await self.store.get(resolve(Table.PROFILES))
        return records if isinstance(records, dict) else {}

    async def create_profile(
        self,
        alias: str,
        *,
        pub: str = "",
        email: str = "",
        full_name: str = "",
        avatar: str = "",
        about_me_text: str = "",
        mining_enabled: bool = False,
    ) -> Profile:
        """Write the initial profile record for a new account."""
        self._me()
        record = {
            "pub": pub,
            "email": email,
            "fullName": full_name,
            "avatar": avatar,
            "aboutMeText": about_me_text,
            "miningEnabled": mining_enabled,
        }
        await self.store.put(profile_by_username(alias), record)
        logger.info(f"Created profile for {alias}")
        return Profile.from_record(alias, record)

    async def get_profile_by_username(self, username: str) -> Profile:
        """Fetch a single profile.

        Raises:
            NotFoundError: If no profile exists for the username
        """
        self._me()
        record = await self.store.get(profile_by_username(username))
        if not isinstance(record, dict):
            raise NotFoundError(f"Profile '{username}' not found", "profile", username)
        return Profile.from_record(username, record)

    async def get_current_profile(self) -> Profile:
        return await self.get_profile_by_username(self._me().alias)

    async def get_user_profiles_by_posts(self, posts: Iterable[Post]) -> list[Profile]:
        """Profiles owning the given posts, one per owner, in post order."""
        self._me()
        seen: set[str] = set()
        profiles = []
        for post in posts:
            alias = post.owner.alias
            if alias in seen:
                continue
            seen.add(alias)
            profiles.append(await self.get_profile_by_username(alias))
        return profiles

    async def search_by_full_name(
        self,
        text_search: str,
        max_results: int | None = None,
    ) -> list[Profile]:
        """Case-insensitive substring search over full names."""
        self._me()
        limit = DEFAULT_SEARCH_RESULTS if max_results is None else max_results
        needle = text_search.strip().lower()
        if not needle or limit <= 0:
            return []

        results = []
        for alias, record in sorted((await self._all_records()).items()):
            if not isinstance(record, dict):
                continue
            if needle in str(record.get("fullName", "")).lower():
                results.append(Profile.from_record(alias, record))
                if len(results) >= limit:
                    break
        return results

    async def find_friends_suggestions(self, max_results: int) -> list[Profile]:
        """Profiles the caller is not connected to yet."""
        me = self._me()
        records = await self._all_records()
        mine = records.get(me.alias) or {}
        excluded = {me.alias}
        excluded.update((mine.get("friends") or {}).keys())
        excluded.update((mine.get("friendRequests") or {}).keys())

        suggestions = []
        for alias, record in sorted(records.items()):
            if alias in excluded or not isinstance(record, dict):
                continue
            if me.alias in (record.get("friendRequests") or {}):
                continue
            suggestions.append(Profile.from_record(alias, record))
            if len(suggestions) >= max_results:
                break
        return suggestions

    async def update_profile(self, patch: dict[str, Any]) -> None:
        """Merge fields into the caller's profile record."""
        me = self._me()
        await self.get_profile_by_username(me.alias)
        await self.store.put(profile_by_username(me.alias), patch)
        logger.debug(f"Updated profile of {me.alias}: {sorted(patch)}")

    async def add_friend(self, username: str) -> None:
        """Send a friend request to another user."""
        me = self._me()
        if username == me.alias:
            raise SyncError("Cannot add yourself as a friend", code="INVALID_FRIEND")
        await self.get_profile_by_username(username)
        await self.store.put(
            friend_requests_by_username(username).child(me.alias),
            {"alias": me.alias, "pub": me.pub, "timestamp": _now_ms()},
        )
        logger.info(f"{me.alias} sent a friend request to {username}")

    async def accept_friend(self, username: str) -> None:
        """Accept a pending request from another user.

        Raises:
            NotFoundError: If there is no pending request from the user
        """
        me = self._me()
        request_path = friend_requests_by_username(me.alias).child(username)
        if await self.store.get(request_path) is None:
            raise NotFoundError(
                f"No friend request from '{username}'",
                "friend_request",
                username,
            )

        timestamp = _now_ms()
        await self.store.put(friends_by_username(me.alias).child(username), {"alias": username, "timestamp": timestamp})
        await self.store.put(friends_by_username(username).child(me.alias), {"alias": me.alias, "timestamp": timestamp})
        await self.store.put(request_path, None)
        logger.info(f"{me.alias} accepted friend request from {username}")

    async def remove_friend(self, username: str) -> None:
        """Drop the friend edge (and any pending request) in both directions."""
        me = self._me()
        await self.store.put(friends_by_username(me.alias).child(username), None)
        await self.store.put(friends_by_username(username).child(me.alias), None)
        await self.store.put(friend_requests_by_username(me.alias).child(username), None)
        await self.store.put(friend_requests_by_username(username).child(me.alias), None)
        logger.info(f"{me.alias} removed friend {username}")
