"""In-memory post cache ordered by publish date."""

import threading
from collections.abc import Iterable

from quill.models.post import Post


def _sorted_by_recency(posts: Iterable[Post]) -> tuple[Post, ...]:
    return tuple(sorted(posts, key=lambda p: p.pub_date, reverse=True))


class PostCache:
    """Thread-safe snapshot cache of every post, newest first.

    Writers build a new sorted tuple and swap it in under a lock; readers
    grab the current tuple and iterate it without locking, so a scan never
    sees a half-applied update.

    Usage::

        cache = PostCache()
        cache.replace_all(posts)
        cache.upsert(post)
        newest = cache.snapshot()[0]
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._posts: tuple[Post, ...] = ()

    def __len__(self) -> int:
        return len(self._posts)

    def snapshot(self) -> tuple[Post, ...]:
        """Return the current posts, ordered by descending ``pub_date``."""
        return self._posts

    def replace_all(self, posts: Iterable[Post]) -> None:
        ordered = _sorted_by_recency(posts)
        with self._lock:
            self._posts = ordered

    def upsert(self, post: Post) -> None:
        """Insert ``post`` or replace the cached post with the same id."""
        with self._lock:
            posts = [p for p in self._posts if p.id != post.id]
            posts.append(post)
            self._posts = _sorted_by_recency(posts)

    def remove(self, post_id: str) -> bool:
        """Drop the post with ``post_id``. Returns False if it was not cached."""
        with self._lock:
            posts = tuple(p for p in self._posts if p.id != post_id)
            removed = len(posts) != len(self._posts)
            self._posts = posts
        return removed
