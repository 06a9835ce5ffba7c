"""
Path addressing for the graph store.

The graph store is a flat namespace of tables, each holding records reached
through dot-joined paths such as ``posts.2018/7/10.public.<post_id>``. This
module maps semantic references (post id, username, date bucket, like
relation) to those paths.

Invariants:
    - Every function here is pure: same inputs, same Path
    - A segment never contains the separator, so joining is injective and
      distinct (table, segments) pairs never produce the same path
    - Invalid segments raise PathSegmentError immediately

How to change safely:
    - Table and TableEnum values are stored data; never rename a value
    - New helpers must go through resolve() so segments are validated
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .errors import PathSegmentError
from .session import Identity

SEPARATOR = "."


class Table(str, Enum):
    """Top-level tables of the graph store."""

    POST_META_BY_ID = "postMetaById"
    POST_METAS_BY_USER = "postMetasByUser"
    POSTS = "posts"
    PROFILES = "profiles"


class TableEnum(str, Enum):
    """Fixed sub-keys used inside tables."""

    PUBLIC = "public"
    PRIVATE = "private"
    LIKES = "likes"
    FRIENDS = "friends"
    REQUESTS = "friendRequests"


@dataclass(frozen=True)
class Path:
    """A location in the graph store.

    Attributes:
        table: Top-level table
        segments: Ordered segments below the table
    """

    table: Table
    segments: tuple[str, ...] = ()

    def child(self, *segments: str | TableEnum) -> Path:
        """Return a path extended by the given segments."""
        return resolve(self.table, *self.segments, *segments)

    @property
    def parts(self) -> tuple[str, ...]:
        """All parts including the table name."""
        return (self.table.value, *self.segments)

    @property
    def key(self) -> str:
        """Last part of the path."""
        return self.parts[-1]

    def __str__(self) -> str:
        return SEPARATOR.join(self.parts)


def validate_segment(segment: object) -> str:
    """Validate a single path segment.

    Args:
        segment: Candidate segment

    Returns:
        The segment as a string

    Raises:
        PathSegmentError: If the segment is not a non-empty string
            free of separators
    """
    if isinstance(segment, TableEnum):
        return segment.value
    if not isinstance(segment, str):
        raise PathSegmentError(segment, "must be a string")
    if not segment:
        raise PathSegmentError(segment, "must not be empty")
    if SEPARATOR in segment:
        raise PathSegmentError(segment, f"must not contain '{SEPARATOR}'")
    return segment


def resolve(table: Table, *segments: str | TableEnum) -> Path:
    """Build a path from a table and ordered segments.

    Example:
        >>> str(resolve(Table.POSTS, "2018/7/10", TableEnum.PUBLIC))
        'posts.2018/7/10.public'
    """
    if not isinstance(table, Table):
        raise PathSegmentError(table, "table must be a Table member")
    return Path(table, tuple(validate_segment(s) for s in segments))


def split_path(path: str) -> tuple[str, ...]:
    """Split a composite path string into validated segments.

    Post paths are produced by the store itself (``<date>.<visibility>.<id>``)
    and are passed around as strings; each part is validated on the way in.
    """
    if not isinstance(path, str) or not path:
        raise PathSegmentError(path, "composite path must be a non-empty string")
    return tuple(validate_segment(part) for part in path.split(SEPARATOR))


def _alias(identity: Identity | None) -> str:
    if identity is None:
        raise PathSegmentError(identity, "current account has no identity")
    return identity.alias


# Post metas


def post_meta_by_id(post_id: str) -> Path:
    return resolve(Table.POST_META_BY_ID, post_id)


def post_metas_by_username(username: str) -> Path:
    return resolve(Table.POST_METAS_BY_USER, username)


def post_metas_by_current_user(identity: Identity | None) -> Path:
    return resolve(Table.POST_METAS_BY_USER, _alias(identity))


def post_metas_by_post_id_of_current_account(identity: Identity | None, post_id: str) -> Path:
    return resolve(Table.POST_METAS_BY_USER, _alias(identity), post_id)


# Posts


def post_by_path(post_path: str) -> Path:
    return resolve(Table.POSTS, *split_path(post_path))


def posts_by_date(date_path: str) -> Path:
    """Public partition of the posts written on a date bucket."""
    return resolve(Table.POSTS, *split_path(date_path), TableEnum.PUBLIC)


def likes_by_post_path(post_path: str) -> Path:
    return resolve(Table.POSTS, *split_path(post_path), TableEnum.LIKES)


def post_likes_by_current_user(identity: Identity | None, post_path: str) -> Path:
    """The caller's own like edge on a post."""
    return resolve(Table.POSTS, *split_path(post_path), TableEnum.LIKES, _alias(identity))


# Profiles


def profile_by_username(username: str) -> Path:
    return resolve(Table.PROFILES, username)


def friends_by_username(username: str) -> Path:
    return resolve(Table.PROFILES, username, TableEnum.FRIENDS)


def friend_requests_by_username(username: str) -> Path:
    return resolve(Table.PROFILES, username, TableEnum.REQUESTS)
