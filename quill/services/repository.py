"""Post repository contract and the shared caching implementation.

``PostRepository`` is what the rest of the app talks to. Storage backends only
implement the small ``PostStore`` / ``FileStore`` protocols; listing,
filtering, visibility and caching live once in ``CachedPostRepository``.
"""

import asyncio
import inspect
import logging
import os
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import Enum
from typing import Protocol

from quill.models.post import Post, utc_now
from quill.services.cache import PostCache

logger = logging.getLogger(__name__)

_SAFE_PATH_SEGMENT_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]*$")
_UNSAFE_FILE_CHARS_RE = re.compile(r"[^a-zA-Z0-9._-]")

# Returning False from a mutation abandons the update
PostMutation = Callable[[Post], bool | None | Awaitable[bool | None]]


class StorageError(RuntimeError):
    """A backing-store read or write failed."""


class PostValidationError(ValueError):
    """A post is missing required content and cannot be saved."""


class PostStore(Protocol):
    """Durable storage for posts (and their comments)."""

    async def load_all(self) -> list[Post]: ...

    async def upsert(self, post: Post) -> None: ...

    async def delete(self, post: Post) -> None: ...


class FileStore(Protocol):
    """Durable storage for uploaded binary files."""

    async def save_file(
        self, data: bytes, file_name: str, suffix: str | None = None
    ) -> str: ...


def validate_path_segment(segment: str) -> str:
    """Validate a user-supplied storage path segment.

    Rejects inputs containing path traversal sequences (..), slashes,
    backslashes, or other unsafe characters. Returns the segment unchanged
    if valid; raises ValueError otherwise.
    """
    if not segment or not _SAFE_PATH_SEGMENT_RE.match(segment) or ".." in segment:
        raise ValueError(f"Invalid path segment: {segment!r}")
    return segment


def stored_file_name(file_name: str, suffix: str | None = None) -> str:
    """Collision-avoiding name for an uploaded file: ``<name>_<suffix><ext>``.

    ``suffix`` defaults to the current time in 100ns ticks. Characters that
    are unsafe in a path are dropped from the name and the suffix.
    """
    base, ext = os.path.splitext(os.path.basename(file_name.replace("\\", "/")))
    suffix = _UNSAFE_FILE_CHARS_RE.sub("", suffix or str(time.time_ns() // 100))
    name = _UNSAFE_FILE_CHARS_RE.sub("", base) or "file"
    ext = _UNSAFE_FILE_CHARS_RE.sub("", ext).lower()
    return f"{name}_{suffix}{ext}"


class PostRepository(ABC):
    """Read and write operations on blog posts.

    Every read takes ``privileged``: privileged callers (editors) see drafts
    and future-dated posts, everyone else only sees visible posts.
    """

    @abstractmethod
    async def get_posts(
        self, privileged: bool = False, count: int | None = None, skip: int = 0
    ) -> list[Post]: ...

    @abstractmethod
    async def get_posts_by_category(
        self, category: str, privileged: bool = False
    ) -> list[Post]: ...

    @abstractmethod
    async def get_posts_by_tag(
        self, tag: str, privileged: bool = False
    ) -> list[Post]: ...

    @abstractmethod
    async def get_post_by_id(
        self, post_id: str, privileged: bool = False
    ) -> Post | None: ...

    @abstractmethod
    async def get_post_by_slug(
        self, slug: str, privileged: bool = False
    ) -> Post | None: ...

    @abstractmethod
    async def get_categories(self, privileged: bool = False) -> list[str]: ...

    @abstractmethod
    async def get_tags(self, privileged: bool = False) -> list[str]: ...

    @abstractmethod
    async def save_post(self, post: Post) -> Post: ...

    @abstractmethod
    async def update_post(
        self,
        post_id: str,
        mutate: PostMutation,
        privileged: bool = True,
        create: bool = False,
    ) -> Post | None: ...

    @abstractmethod
    async def delete_post(self, post: Post) -> None: ...

    @abstractmethod
    async def save_file(
        self, data: bytes, file_name: str, suffix: str | None = None
    ) -> str: ...


def validate_post(post: Post) -> None:
    """Raise PostValidationError if ``post`` lacks required content."""
    try:
        validate_path_segment(post.id)
    except ValueError as e:
        raise PostValidationError(f"Invalid post id: {post.id!r}") from e
    if not post.title.strip():
        raise PostValidationError("Post title is required")
    if not post.content.strip():
        raise PostValidationError("Post content is required")
    if not post.slug.strip() and not post.title.strip():
        raise PostValidationError("Post needs a slug or a title to derive one from")


class CacheState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


class CachedPostRepository(PostRepository):
    """Repository that serves every read from an in-memory snapshot.

    The full post set is loaded from ``store`` on first use. Writes go to the
    store first and only then to the cache, all under one lock, so the cache
    never holds a change the store rejected.
    """

    def __init__(
        self,
        store: PostStore,
        files: FileStore | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._files = files
        self._clock = clock
        self._cache = PostCache()
        self._state = CacheState.UNINITIALIZED
        self._load_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    @property
    def state(self) -> CacheState:
        return self._state

    async def _posts(self) -> tuple[Post, ...]:
        if self._state is not CacheState.READY:
            await self._load()
        return self._cache.snapshot()

    async def _load(self) -> None:
        async with self._load_lock:
            if self._state is CacheState.READY:
                return
            self._state = CacheState.LOADING
            try:
                posts = await self._store.load_all()
            except Exception as e:
                self._state = CacheState.UNINITIALIZED
                logger.error("Failed to load posts from backing store: %s", e)
                raise StorageError("Could not load posts") from e
            self._cache.replace_all(posts)
            self._state = CacheState.READY
            logger.info("Loaded %d posts into cache", len(posts))

    async def _visible(self, privileged: bool) -> list[Post]:
        posts = await self._posts()
        if privileged:
            return list(posts)
        now = self._clock()
        return [p for p in posts if p.is_visible(now)]

    async def get_posts(
        self, privileged: bool = False, count: int | None = None, skip: int = 0
    ) -> list[Post]:
        posts = await self._visible(privileged)
        skip = max(skip, 0)
        if count is None:
            return posts[skip:]
        return posts[skip : skip + max(count, 0)]

    async def get_posts_by_category(
        self, category: str, privileged: bool = False
    ) -> list[Post]:
        wanted = category.strip().lower()
        return [
            p
            for p in await self._visible(privileged)
            if wanted in [c.lower() for c in p.categories]
        ]

    async def get_posts_by_tag(self, tag: str, privileged: bool = False) -> list[Post]:
        wanted = tag.strip().lower()
        return [
            p
            for p in await self._visible(privileged)
            if wanted in [t.lower() for t in p.tags]
        ]

    async def get_post_by_id(
        self, post_id: str, privileged: bool = False
    ) -> Post | None:
        wanted = post_id.lower()
        for post in await self._visible(privileged):
            if post.id.lower() == wanted:
                return post
        return None

    async def get_post_by_slug(
        self, slug: str, privileged: bool = False
    ) -> Post | None:
        wanted = slug.lower()
        for post in await self._visible(privileged):
            if post.slug.lower() == wanted:
                return post
        return None

    async def get_categories(self, privileged: bool = False) -> list[str]:
        posts = await self._visible(privileged)
        return list(dict.fromkeys(c.lower() for p in posts for c in p.categories))

    async def get_tags(self, privileged: bool = False) -> list[str]:
        posts = await self._visible(privileged)
        return list(dict.fromkeys(t.lower() for p in posts for t in p.tags))

    async def save_post(self, post: Post) -> Post:
        """Insert or update ``post``; returns the stored copy.

        The caller's object is not modified and is not placed in the cache.
        """
        validate_post(post)
        await self._posts()

        async with self._write_lock:
            return await self._write(post.model_copy(deep=True))

    async def update_post(
        self,
        post_id: str,
        mutate: PostMutation,
        privileged: bool = True,
        create: bool = False,
    ) -> Post | None:
        """Apply ``mutate`` to a copy of the current post and save it.

        Lookup, mutation and write all happen under the write lock, so
        concurrent updates to one post never overwrite each other. Returns
        the stored post, or None when the post is missing (and ``create`` is
        off) or ``mutate`` returned False. With ``create``, a missing post
        starts out as an empty ``Post`` with ``post_id``.
        """
        await self._posts()

        async with self._write_lock:
            current = await self.get_post_by_id(post_id, privileged or create)
            if current is not None:
                post = current.model_copy(deep=True)
            elif create:
                post = Post(id=post_id)
            else:
                return None

            result = mutate(post)
            if inspect.isawaitable(result):
                result = await result
            if result is False:
                return None

            validate_post(post)
            return await self._write(post)

    async def _write(self, stored: Post) -> Post:
        # Caller holds the write lock and owns ``stored``
        stored.last_modified = self._clock()
        try:
            await self._store.upsert(stored)
        except Exception as e:
            logger.error("Failed to save post %s: %s", stored.id, e)
            raise StorageError(f"Could not save post {stored.id}") from e
        self._cache.upsert(stored)

        logger.info("Saved post %s (%s)", stored.id, stored.slug)
        return stored

    async def delete_post(self, post: Post) -> None:
        """Delete ``post`` and all of its comments."""
        await self._posts()

        async with self._write_lock:
            try:
                await self._store.delete(post)
            except Exception as e:
                logger.error("Failed to delete post %s: %s", post.id, e)
                raise StorageError(f"Could not delete post {post.id}") from e
            self._cache.remove(post.id)

        logger.info("Deleted post %s with %d comments", post.id, len(post.comments))

    async def save_file(
        self, data: bytes, file_name: str, suffix: str | None = None
    ) -> str:
        if self._files is None:
            raise StorageError("No file store configured")
        try:
            return await self._files.save_file(data, file_name, suffix)
        except Exception as e:
            logger.error("Failed to save file %s: %s", file_name, e)
            raise StorageError(f"Could not save file {file_name}") from e
