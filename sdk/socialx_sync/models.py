"""
Data models for profiles, posts and operation inputs.

Records in the graph store use camelCase keys; the models accept either
the stored key or the Python field name and dump back to the stored form.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .session import Identity


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_record(self) -> dict[str, Any]:
        """Dump to the stored (camelCase) form."""
        return self.model_dump(by_alias=True)


class Profile(_Record):
    """A user profile, normalized from its stored record."""

    alias: str = ""
    pub: str = ""
    email: str = ""
    full_name: str = Field(default="", alias="fullName")
    avatar: str = ""
    about_me_text: str = Field(default="", alias="aboutMeText")
    mining_enabled: bool = Field(default=False, alias="miningEnabled")
    friends: list[str] = Field(default_factory=list)
    friend_requests: list[str] = Field(default_factory=list, alias="friendRequests")

    @classmethod
    def from_record(cls, alias: str, record: dict[str, Any]) -> Profile:
        """Build a profile from the raw store record.

        Friend and request edges are stored as maps keyed by alias; deleted
        edges are absent, so the list is simply the sorted keys.
        """
        data = dict(record)
        data["alias"] = alias
        data["friends"] = sorted((record.get("friends") or {}).keys())
        data["friendRequests"] = sorted((record.get("friendRequests") or {}).keys())
        return cls.model_validate(data)


class UpdateProfileInput(_Record):
    """Fields of an UpdateProfile request; unset fields are left untouched."""

    email: str | None = None
    full_name: str | None = Field(default=None, alias="fullName")
    avatar: str | None = None
    about_me_text: str | None = Field(default=None, alias="aboutMeText")
    mining_enabled: bool | None = Field(default=None, alias="miningEnabled")

    def to_payload(self, *, include_avatar: bool = True) -> dict[str, Any]:
        """Stored-form patch with unset fields dropped."""
        exclude = None if include_avatar else {"avatar"}
        return self.model_dump(by_alias=True, exclude_none=True, exclude=exclude)


class PostOwner(_Record):
    alias: str
    pub: str = ""


class Post(_Record):
    """A post record."""

    post_id: str = Field(alias="postId")
    post_path: str = Field(default="", alias="postPath")
    owner: PostOwner
    post_text: str = Field(default="", alias="postText")
    media: list[str] = Field(default_factory=list)
    timestamp: int = 0
    privacy: str = "public"


class FriendInput(_Record):
    """Reference to another user for friend edge mutations."""

    username: str


class SearchProfilesInput(_Record):
    term: str
    max_results: int | None = Field(default=None, alias="maxResults")


class FriendsSuggestionsInput(_Record):
    max_results: int = Field(default=10, alias="maxResults")


class CurrentUser(_Record):
    """Display record of the signed-in user."""

    user_id: str = Field(alias="userId")
    user_name: str = Field(alias="userName")
    email: str = ""
    full_name: str = Field(default="", alias="fullName")
    avatar_url: str = Field(default="", alias="avatarURL")
    about_me_text: str = Field(default="", alias="aboutMeText")
    number_of_friends: int = Field(default=0, alias="numberOfFriends")
    mining_enabled: bool = Field(default=False, alias="miningEnabled")
    pub: str = ""


def build_current_user(identity: Identity, profile: Profile, gateway_url: str) -> CurrentUser:
    """Derive the display record of the signed-in user.

    The avatar is stored as a content hash and served through the storage
    gateway, so the URL is the gateway prefix plus the hash.
    """
    avatar_url = gateway_url + profile.avatar if profile.avatar else ""
    return CurrentUser(
        userId=identity.alias,
        userName=identity.alias,
        email=profile.email,
        fullName=profile.full_name,
        avatarURL=avatar_url,
        aboutMeText=profile.about_me_text,
        numberOfFriends=len(profile.friends),
        miningEnabled=profile.mining_enabled,
        pub=profile.pub,
    )
