"""Blog post and comment data models."""

import hashlib
import threading
import time
import uuid
from datetime import datetime, timedelta, timezone
from urllib.parse import quote_plus

from pydantic import BaseModel, Field, field_validator

from quill.config import PostListView
from quill.services.content import render_post_body

_id_lock = threading.Lock()
_last_post_id = 0


def new_post_id() -> str:
    """Return a timestamp-derived id, strictly increasing within the process.

    Ids are 100ns ticks since the Unix epoch; two posts created within the
    same tick get consecutive values.
    """
    global _last_post_id
    with _id_lock:
        ticks = max(time.time_ns() // 100, _last_post_id + 1)
        _last_post_id = ticks
        return str(ticks)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Comment(BaseModel):
    """A reader comment, owned by exactly one post."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    author: str
    email: str
    content: str
    is_admin: bool = False
    pub_date: datetime = Field(default_factory=utc_now)

    @field_validator("author", "email", "content")
    @classmethod
    def strip_text(cls, value: str) -> str:
        return value.strip()

    @field_validator("pub_date")
    @classmethod
    def normalize_pub_date(cls, value: datetime) -> datetime:
        return as_utc(value)

    def gravatar_url(self) -> str:
        """Gravatar avatar URL for the commenter's email address."""
        digest = hashlib.md5(self.email.strip().lower().encode("utf-8")).hexdigest()
        return f"https://www.gravatar.com/avatar/{digest}?s=60&d=blank"

    def render_content(self) -> str:
        return self.content


class Post(BaseModel):
    """A blog post with its comments."""

    id: str = Field(default_factory=new_post_id)
    slug: str = ""
    title: str = ""
    content: str = ""
    excerpt: str = ""
    is_published: bool = True
    pub_date: datetime = Field(default_factory=utc_now)
    last_modified: datetime = Field(default_factory=utc_now)
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)

    @field_validator("pub_date", "last_modified")
    @classmethod
    def normalize_dates(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("categories", "tags")
    @classmethod
    def normalize_terms(cls, values: list[str]) -> list[str]:
        """Categories and tags are stored lower-cased and trimmed."""
        return [v.strip().lower() for v in values if v and v.strip()]

    def is_visible(self, now: datetime | None = None) -> bool:
        """A post is public once published and its publish date has passed."""
        now = now or utc_now()
        return self.is_published and self.pub_date <= now

    def are_comments_open(
        self, comments_close_after_days: int, now: datetime | None = None
    ) -> bool:
        now = now or utc_now()
        return now <= self.pub_date + timedelta(days=comments_close_after_days)

    def get_link(self) -> str:
        return f"/blog/{self.slug}/"

    def get_encoded_link(self) -> str:
        return f"/blog/{quote_plus(self.slug)}/"

    def render_content(self) -> str:
        """Post body with lazy-loaded images and expanded video embeds."""
        return render_post_body(self.content)

    def find_comment(self, comment_id: str) -> Comment | None:
        target = comment_id.lower()
        for comment in self.comments:
            if comment.id.lower() == target:
                return comment
        return None


class PostDraft(BaseModel):
    """Editor submission for creating or updating a post."""

    id: str | None = Field(None, max_length=100, pattern=r"^[a-zA-Z0-9_-]+$")
    title: str = Field(..., min_length=1, max_length=500)
    slug: str = Field("", max_length=200)
    content: str = Field(..., min_length=1)
    excerpt: str = ""
    is_published: bool = True
    pub_date: datetime | None = None
    # Comma-separated lists, as submitted by the editor form
    categories: str = ""
    tags: str = ""


class CommentDraft(BaseModel):
    """Reader comment submission."""

    author: str = Field(..., min_length=1, max_length=200)
    email: str = Field(
        ..., min_length=3, max_length=200, pattern=r"^[^@\s]+@[^@\s]+$"
    )
    content: str = Field(..., min_length=1, max_length=5000)
    website: str = ""  # Honeypot: bots fill this in


class CommentView(BaseModel):
    """A comment as shown under a post. The email is only used for the avatar."""

    id: str
    author: str
    content: str
    is_admin: bool
    pub_date: datetime
    avatar_url: str

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentView":
        return cls(
            id=comment.id,
            author=comment.author,
            content=comment.render_content(),
            is_admin=comment.is_admin,
            pub_date=comment.pub_date,
            avatar_url=comment.gravatar_url(),
        )


class PostDetail(BaseModel):
    """A single post prepared for display."""

    post: Post
    rendered_content: str
    comments_open: bool
    link: str
    # Empty when the blog hides comments
    comments: list[CommentView] = Field(default_factory=list)


class PostPage(BaseModel):
    """One page of a post listing."""

    posts: list[Post]
    page: int
    posts_per_page: int
    total_pages: int
    total_posts: int
    list_view: PostListView
    prev_link: str
    next_link: str


class BlogInfo(BaseModel):
    """Blog-wide display settings."""

    name: str
    description: str
    owner: str
    posts_per_page: int
    list_view: PostListView
    comments_close_after_days: int
    display_comments: bool
