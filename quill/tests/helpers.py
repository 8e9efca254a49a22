"""Test doubles and builders shared across the test suite."""

import asyncio
from datetime import datetime, timedelta, timezone

from quill.models.post import Post

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryPostStore:
    """PostStore/FileStore double that keeps documents in dicts.

    Set ``fail_writes`` to make upsert/delete raise, mimicking an I/O error.
    A non-zero ``delay`` makes upsert and save_file yield to the event loop
    for that many seconds, like a network round trip.
    """

    def __init__(self, posts=None):
        self.posts = {p.id: p.model_copy(deep=True) for p in posts or []}
        self.files: dict[str, bytes] = {}
        self.load_calls = 0
        self.fail_writes = False
        self.delay = 0.0

    async def load_all(self):
        self.load_calls += 1
        return [p.model_copy(deep=True) for p in self.posts.values()]

    async def upsert(self, post):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_writes:
            raise OSError("disk full")
        self.posts[post.id] = post.model_copy(deep=True)

    async def delete(self, post):
        if self.fail_writes:
            raise OSError("disk full")
        self.posts.pop(post.id, None)

    async def save_file(self, data, file_name, suffix=None):
        if self.delay:
            await asyncio.sleep(self.delay)
        self.files[file_name] = data
        return f"/files/{file_name}"


def make_post(
    post_id="p1",
    title="A Post",
    slug=None,
    days_ago=1,
    is_published=True,
    categories=None,
    tags=None,
    content="<p>Hello</p>",
):
    """Build a Post published ``days_ago`` days before NOW."""
    return Post(
        id=post_id,
        title=title,
        slug=slug if slug is not None else post_id,
        content=content,
        excerpt="",
        is_published=is_published,
        pub_date=NOW - timedelta(days=days_ago),
        categories=categories or [],
        tags=tags or [],
    )
