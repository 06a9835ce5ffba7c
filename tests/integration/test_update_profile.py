"""
Integration tests for UpdateCurrentProfile.

Tests cover:
- Upload-then-update ordering for local avatars
- Remote avatar URLs are not re-sent
- Failure paths (malformed response, abort, no transfer)
"""

import pytest

from socialx_sync.events import EventType
from socialx_sync.ledger import ActivityStatus, OperationKind
from socialx_sync.models import UpdateProfileInput
from socialx_sync.operations import UpdateCurrentProfile
from socialx_sync.state import ProfileState
from socialx_sync.uploads import UploadPhase

AVATAR = "/storage/emulated/0/DCIM/avatar.jpg"


async def create_alice(profiles):
    return await profiles.create_profile("alice", pub="pk_alice", full_name="Alice", avatar="QmOld")


class TestLocalAvatar:
    """A local avatar is uploaded before the profile write."""

    @pytest.mark.asyncio
    async def test_hash_is_written_as_avatar(self, context, profiles, transfer):
        await create_alice(profiles)
        entry = await UpdateCurrentProfile(context)(UpdateProfileInput(full_name="Alice A.", avatar=AVATAR))

        assert entry.status is ActivityStatus.DONE
        profile = await profiles.get_current_profile()
        assert profile.avatar == "QmAvatarHash"
        assert profile.full_name == "Alice A."
        assert transfer.uploads == [AVATAR]

    @pytest.mark.asyncio
    async def test_upload_completes_before_update(self, context, profiles):
        await create_alice(profiles)
        seen = []
        original = profiles.update_profile

        async def spy(patch):
            seen.append((context.uploads.get(AVATAR), patch))
            await original(patch)

        profiles.update_profile = spy

        await UpdateCurrentProfile(context)(UpdateProfileInput(avatar=AVATAR))

        [(status, patch)] = seen
        assert status.phase is UploadPhase.COMPLETED
        assert status.done is True
        assert patch == {"avatar": status.hash}

    @pytest.mark.asyncio
    async def test_upload_records_are_published(self, context, profiles, bus):
        await create_alice(profiles)
        operation = UpdateCurrentProfile(context)
        await operation(UpdateProfileInput(avatar=AVATAR))

        statuses = [e.payload for e in bus.history if e.type is EventType.UPLOAD_STATUS]
        assert statuses[0].progress == 0
        assert statuses[-1].done is True
        assert operation.upload.status == statuses[-1]

    @pytest.mark.asyncio
    async def test_refreshes_current_profile(self, context, profiles, bus):
        await create_alice(profiles)
        state = ProfileState(bus)

        await UpdateCurrentProfile(context)(UpdateProfileInput(avatar=AVATAR))

        assert state.current.avatar == "QmAvatarHash"


class TestRemoteAvatar:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["https://gw/ipfs/QmNew", "HTTP://cdn.example.com/a.png"])
    async def test_url_is_not_sent(self, context, profiles, transfer, url):
        await create_alice(profiles)
        entry = await UpdateCurrentProfile(context)(UpdateProfileInput(full_name="Alice B.", avatar=url))

        assert entry.status is ActivityStatus.DONE
        assert transfer.uploads == []
        profile = await profiles.get_current_profile()
        assert profile.avatar == "QmOld"
        assert profile.full_name == "Alice B."

    @pytest.mark.asyncio
    async def test_empty_avatar_is_forwarded(self, context, profiles, transfer):
        await create_alice(profiles)
        entry = await UpdateCurrentProfile(context)(UpdateProfileInput(avatar=""))

        assert entry.status is ActivityStatus.DONE
        assert transfer.uploads == []
        assert (await profiles.get_current_profile()).avatar == ""

    @pytest.mark.asyncio
    async def test_no_avatar_field(self, context, profiles, transfer):
        await create_alice(profiles)
        await UpdateCurrentProfile(context)(UpdateProfileInput(about_me_text="hello"))

        profile = await profiles.get_current_profile()
        assert profile.about_me_text == "hello"
        assert profile.avatar == "QmOld"


class TestUploadFailures:
    """A failed upload fails the activity and leaves the profile untouched."""

    @pytest.mark.asyncio
    async def test_malformed_response(self, context, profiles, transfer, bus):
        await create_alice(profiles)
        transfer.response_body = "502 Bad Gateway"

        entry = await UpdateCurrentProfile(context)(UpdateProfileInput(full_name="X", avatar=AVATAR))

        assert entry.status is ActivityStatus.FAILED
        assert entry.closed is True
        assert (await profiles.get_current_profile()).full_name == "Alice"
        assert not any(
            e.type is EventType.ACTIVITY_BEGIN and e.kind == OperationKind.GET_CURRENT_PROFILE.value
            for e in bus.history
        )

    @pytest.mark.asyncio
    async def test_abort_during_upload(self, context, profiles, transfer):
        await create_alice(profiles)

        async def abort_midway(progress):
            if progress == 50:
                await context.uploads.abort(AVATAR)

        transfer.on_step = abort_midway

        entry = await UpdateCurrentProfile(context)(UpdateProfileInput(avatar=AVATAR))

        assert entry.status is ActivityStatus.FAILED
        assert context.uploads.get(AVATAR).phase is UploadPhase.ABORTED
        assert (await profiles.get_current_profile()).avatar == "QmOld"

    @pytest.mark.asyncio
    async def test_no_transfer_configured(self, context, profiles):
        await create_alice(profiles)
        context.transfer = None

        entry = await UpdateCurrentProfile(context)(UpdateProfileInput(avatar=AVATAR))

        assert entry.status is ActivityStatus.FAILED
        assert "transfer" in entry.error_message.lower()

    @pytest.mark.asyncio
    async def test_missing_profile(self, context, transfer):
        entry = await UpdateCurrentProfile(context)(UpdateProfileInput(full_name="Alice"))

        assert entry.status is ActivityStatus.FAILED
        assert transfer.uploads == []
