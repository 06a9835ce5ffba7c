"""
Posts repository over the graph store.

Layout:
    posts.<date>.public.<post_id>               post record
    posts.<date>.public.<post_id>.likes.<alias> like edge
    postMetaById.<post_id>                      {postPath, owner}
    postMetasByUser.<alias>.<post_id>           {postPath}

The date bucket is ``YYYY/M/D`` in UTC, so a day's public posts live under
one node and can be read in a single get.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from ..errors import NotAuthenticatedError, NotFoundError, SyncError
from ..models import Post
from ..paths import (
    SEPARATOR,
    TableEnum,
    likes_by_post_path,
    post_by_path,
    post_likes_by_current_user,
    post_meta_by_id,
    post_metas_by_current_user,
    post_metas_by_post_id_of_current_account,
    post_metas_by_username,
    posts_by_date,
)
from ..session import Identity, Session, is_authenticated
from ..store import GraphStore

logger = logging.getLogger(__name__)


def date_bucket(timestamp_ms: int) -> str:
    """Date bucket segment for a timestamp."""
    day = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return f"{day.year}/{day.month}/{day.day}"


class PostsRepository:
    """Remote post operations.

    Every call requires a current identity and raises NotAuthenticatedError
    before touching the store otherwise.
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

    async def create_post(
        self,
        post_text: str,
        *,
        media: list[str] | None = None,
        timestamp: int | None = None,
    ) -> Post:
        """Publish a public post for the current user."""
        me = self._me()
        timestamp = timestamp if timestamp is not None else int(time.time() * 1000)
        post_id = uuid.uuid4().hex
        post_path = SEPARATOR.join((date_bucket(timestamp), TableEnum.PUBLIC.value, post_id))

        post = Post(
            postId=post_id,
            postPath=post_path,
            owner={"alias": me.alias, "pub": me.pub},
            postText=post_text,
            media=media or [],
            timestamp=timestamp,
        )
        await self.store.put(post_by_path(post_path), post.to_record())
        await self.store.put(
            post_meta_by_id(post_id),
            {"postPath": post_path, "owner": post.owner.to_record(), "timestamp": timestamp},
        )
        await self.store.put(
            post_metas_by_post_id_of_current_account(me, post_id),
            {"postPath": post_path, "timestamp": timestamp},
        )
        logger.info(f"{me.alias} created post {post_id}")
        return post

    async def _post_path(self, post_id: str) -> str:
        meta = await self.store.get(post_meta_by_id(post_id))
        if not isinstance(meta, dict) or not meta.get("postPath"):
            raise NotFoundError(f"Post '{post_id}' not found", "post", post_id)
        return meta["postPath"]

    async def _read_post(self, post_path: str) -> Post | None:
        record = await self.store.get(post_by_path(post_path))
        if not isinstance(record, dict):
            return None
        return Post.model_validate(record)

    async def get_post_by_id(self, post_id: str) -> Post:
        self._me()
        post = await self._read_post(await self._post_path(post_id))
        if post is None:
            raise NotFoundError(f"Post '{post_id}' not found", "post", post_id)
        return post

    async def _posts_from_metas(self, metas: Any) -> list[Post]:
        posts = []
        for meta in (metas or {}).values():
            if not isinstance(meta, dict) or not meta.get("postPath"):
                continue
            post = await self._read_post(meta["postPath"])
            if post is not None:
                posts.append(post)
        return sorted(posts, key=lambda p: p.timestamp, reverse=True)

    async def get_posts_by_user(self, username: str) -> list[Post]:
        """A user's posts, newest first."""
        self._me()
        return await self._posts_from_metas(await self.store.get(post_metas_by_username(username)))

    async def get_posts_by_current_user(self) -> list[Post]:
        return await self._posts_from_metas(await self.store.get(post_metas_by_current_user(self._me())))

    async def get_public_posts_by_date(self, date_path: str) -> list[Post]:
        """Public posts of one date bucket, newest first."""
        self._me()
        records = await self.store.get(posts_by_date(date_path)) or {}
        posts = [Post.model_validate(r) for r in records.values() if isinstance(r, dict)]
        return sorted(posts, key=lambda p: p.timestamp, reverse=True)

    async def remove_post(self, post_id: str) -> None:
        """Delete one of the current user's posts."""
        me = self._me()
        own_meta = await self.store.get(post_metas_by_post_id_of_current_account(me, post_id))
        if not isinstance(own_meta, dict):
            raise SyncError(f"Post '{post_id}' is not owned by {me.alias}", code="NOT_OWNER")

        await self.store.put(post_by_path(own_meta["postPath"]), None)
        await self.store.put(post_meta_by_id(post_id), None)
        await self.store.put(post_metas_by_post_id_of_current_account(me, post_id), None)
        logger.info(f"{me.alias} removed post {post_id}")

    async def like_post(self, post_id: str) -> None:
        me = self._me()
        post_path = await self._post_path(post_id)
        await self.store.put(
            post_likes_by_current_user(me, post_path),
            {"alias": me.alias, "timestamp": int(time.time() * 1000)},
        )

    async def unlike_post(self, post_id: str) -> None:
        me = self._me()
        post_path = await self._post_path(post_id)
        await self.store.put(post_likes_by_current_user(me, post_path), None)

    async def get_likes(self, post_id: str) -> list[str]:
        """Aliases that liked a post."""
        self._me()
        likes = await self.store.get(likes_by_post_path(await self._post_path(post_id)))
        return sorted(likes.keys()) if isinstance(likes, dict) else []
