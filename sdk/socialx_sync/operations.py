"""
Sync operations: the orchestration unit of every user-facing data action.

Each operation runs the same sequence:
1. Read the current identity; without one the call is a silent no-op
2. Publish an INTENT event carrying the input
3. Begin a ledger entry under a fresh id
4. Perform the remote call(s)
5. On success, sync: publish SYNCED with the normalized result, or
   re-fetch the current profile for operations that return nothing
6. On failure, record the error message on the ledger entry
7. Always end the ledger entry

Invariants:
    - Unauthenticated calls produce no events, no ledger entry and no
      remote call
    - Every begun entry is ended exactly once, whatever fails
    - Exceptions never escape an operation; they become failed entries
      (task cancellation is recorded and then re-raised)
    - A failed operation publishes no SYNCED event, so cached views stay
      unchanged
    - For avatar updates, the profile write happens only after the upload
      has recorded its COMPLETED state

How to change safely:
    - New operations subclass SyncOperation and implement remote_call();
      override sync() only to change what "synced" means
    - Keep the auth gate as the first step of __call__
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

from .errors import SyncError, TransferError
from .events import EventBus, EventType
from .ledger import ActivityEntry, ActivityLedger, OperationKind
from .models import (
    FriendInput,
    FriendsSuggestionsInput,
    Post,
    Profile,
    SearchProfilesInput,
    UpdateProfileInput,
)
from .repository import ProfilesRepository
from .session import Session, is_authenticated
from .transfer import Transfer
from .uploads import UploadStateMachine, UploadTracker

logger = logging.getLogger(__name__)

# Suggestions are always requested with this limit, whatever the caller asks.
SUGGESTIONS_LIMIT = 10

REMOTE_URL_SCHEMES = ("http://", "https://")

InputT = TypeVar("InputT")
ResultT = TypeVar("ResultT")


def is_remote_url(value: str) -> bool:
    return value.lower().startswith(REMOTE_URL_SCHEMES)


def error_message(error: BaseException) -> str:
    """Message recorded on the ledger for an error."""
    if isinstance(error, SyncError):
        return error.message
    return str(error) or type(error).__name__


@dataclass
class SyncContext:
    """Capabilities shared by all operations.

    Attributes:
        profiles: Remote profile operations
        session: Current identity provider
        ledger: Shared activity ledger (owns the event bus)
        uploads: Upload record tracker
        transfer: File transfer subsystem (needed for avatar uploads)
    """

    profiles: ProfilesRepository
    session: Session
    ledger: ActivityLedger
    uploads: UploadTracker
    transfer: Transfer | None = None

    @property
    def bus(self) -> EventBus:
        return self.ledger.bus


class SyncOperation(Generic[InputT, ResultT]):
    """Base class for sync operations.

    Example:
        >>> entry = await GetProfileByUsername(context)("bob")
        >>> entry.status
        <ActivityStatus.DONE: 'done'>
    """

    kind: ClassVar[OperationKind]

    def __init__(self, context: SyncContext) -> None:
        self.context = context
        self.activity_id: str | None = None

    async def remote_call(self, payload: InputT) -> ResultT:
        raise NotImplementedError

    async def sync(self, payload: InputT, result: ResultT) -> None:
        """Publish the normalized result."""
        await self.context.bus.publish(
            EventType.SYNCED,
            kind=self.kind.value,
            activity_id=self.activity_id,
            payload=result,
        )

    async def __call__(self, payload: InputT = None) -> ActivityEntry | None:  # type: ignore[assignment]
        """Run the operation.

        Returns:
            The closed ledger entry, or None if the auth gate dropped the call
        """
        if not is_authenticated(self.context.session.current_identity()):
            logger.debug(f"{self.kind.value} skipped: not authenticated")
            return None

        ledger = self.context.ledger
        activity_id = str(uuid.uuid4())
        self.activity_id = activity_id

        try:
            await self.context.bus.publish(
                EventType.INTENT,
                kind=self.kind.value,
                activity_id=activity_id,
                payload=payload,
            )
            await ledger.begin(self.kind, activity_id)
            result = await self.remote_call(payload)
            await self.sync(payload, result)
        except asyncio.CancelledError:
            await ledger.fail(self.kind, activity_id, "Operation cancelled")
            raise
        except Exception as e:
            logger.warning(f"{self.kind.value} failed: {e}", exc_info=not isinstance(e, SyncError))
            await ledger.fail(self.kind, activity_id, error_message(e))
        finally:
            await ledger.end(activity_id)

        return ledger.get(activity_id)


class GetProfilesByPosts(SyncOperation[list[Post], list[Profile]]):
    kind = OperationKind.GET_PROFILES_BY_POSTS

    async def remote_call(self, payload: list[Post]) -> list[Profile]:
        return await self.context.profiles.get_user_profiles_by_posts(payload)


class SearchProfilesByFullName(SyncOperation[SearchProfilesInput, list[Profile]]):
    kind = OperationKind.SEARCH_PROFILES_BY_FULLNAME

    async def remote_call(self, payload: SearchProfilesInput) -> list[Profile]:
        return await self.context.profiles.search_by_full_name(
            payload.term,
            max_results=payload.max_results,
        )


class FindFriendsSuggestions(SyncOperation[FriendsSuggestionsInput, list[Profile]]):
    kind = OperationKind.FIND_FRIENDS_SUGGESTIONS

    async def remote_call(self, payload: FriendsSuggestionsInput) -> list[Profile]:
        if payload.max_results != SUGGESTIONS_LIMIT:
            logger.debug(f"Requested {payload.max_results} suggestions, asking for {SUGGESTIONS_LIMIT}")
        return await self.context.profiles.find_friends_suggestions(max_results=SUGGESTIONS_LIMIT)


class GetProfileByUsername(SyncOperation[str, Profile]):
    kind = OperationKind.GET_PROFILE_BY_USERNAME

    async def remote_call(self, payload: str) -> Profile:
        return await self.context.profiles.get_profile_by_username(payload)


class GetCurrentProfile(SyncOperation[None, Profile]):
    kind = OperationKind.GET_CURRENT_PROFILE

    async def remote_call(self, payload: None) -> Profile:
        return await self.context.profiles.get_current_profile()


class _SnapshotRefresh(SyncOperation[InputT, None]):
    """Operations whose sync step re-reads the whole current profile."""

    async def sync(self, payload: InputT, result: None) -> None:
        await GetCurrentProfile(self.context)()


class UpdateCurrentProfile(_SnapshotRefresh[UpdateProfileInput]):
    """Update the caller's profile, uploading a local avatar first.

    Avatar handling:
    - local file path: upload it, then write the content hash as avatar
    - remote URL: already uploaded; the avatar field is not sent
    - empty or missing: the input is forwarded unchanged
    """

    kind = OperationKind.UPDATE_PROFILE

    def __init__(self, context: SyncContext) -> None:
        super().__init__(context)
        self.upload: UploadStateMachine | None = None

    async def remote_call(self, payload: UpdateProfileInput) -> None:
        avatar = payload.avatar

        if avatar and not is_remote_url(avatar):
            if self.context.transfer is None:
                raise TransferError("No transfer subsystem configured", local_path=avatar)
            self.upload = UploadStateMachine(avatar, self.context.uploads, self.context.transfer)
            content_hash = await self.upload.run()
            patch: dict[str, Any] = {**payload.to_payload(include_avatar=False), "avatar": content_hash}
        elif avatar:
            patch = payload.to_payload(include_avatar=False)
        else:
            patch = payload.to_payload()

        await self.context.profiles.update_profile(patch)


class AddFriend(_SnapshotRefresh[FriendInput]):
    kind = OperationKind.ADD_FRIEND

    async def remote_call(self, payload: FriendInput) -> None:
        await self.context.profiles.add_friend(payload.username)


class RemoveFriend(_SnapshotRefresh[FriendInput]):
    kind = OperationKind.REMOVE_FRIEND

    async def remote_call(self, payload: FriendInput) -> None:
        await self.context.profiles.remove_friend(payload.username)


class AcceptFriend(_SnapshotRefresh[FriendInput]):
    kind = OperationKind.ACCEPT_FRIEND

    async def remote_call(self, payload: FriendInput) -> None:
        await self.context.profiles.accept_friend(payload.username)
