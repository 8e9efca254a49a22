"""Blog workflows: listings, editor saves, comments and deletion.

These are the operations the HTTP layer calls. They take the repository and
the caller's privilege explicitly and never touch request state.
"""

import logging
from datetime import datetime

from quill.config import Settings
from quill.models.post import (
    BlogInfo,
    Comment,
    CommentDraft,
    CommentView,
    Post,
    PostDetail,
    PostDraft,
    PostPage,
    as_utc,
    new_post_id,
    utc_now,
)
from quill.services.content import externalize_embedded_images
from quill.services.pagination import effective_page_size, page_window, total_pages
from quill.services.repository import PostRepository, validate_post
from quill.services.slug import create_slug

logger = logging.getLogger(__name__)


def _parse_terms(raw: str) -> list[str]:
    """Split a comma-separated category/tag list into normalized terms."""
    return [t.strip().lower() for t in raw.split(",") if t.strip()]


def _build_page(
    posts: list[Post], page: int, settings: Settings, base_path: str
) -> PostPage:
    per_page = effective_page_size(settings.posts_per_page)
    base = base_path.rstrip("/")
    return PostPage(
        posts=page_window(posts, page, per_page),
        page=page,
        posts_per_page=per_page,
        total_pages=total_pages(len(posts), per_page),
        total_posts=len(posts),
        list_view=settings.list_view,
        # "prev" walks back in time to older posts, "next" toward newer ones
        prev_link=f"{base}/{page + 1}/",
        next_link=f"{base}/" if page <= 1 else f"{base}/{page - 1}/",
    )


async def list_posts(
    repo: PostRepository, settings: Settings, page: int = 0, privileged: bool = False
) -> PostPage:
    posts = await repo.get_posts(privileged=privileged)
    return _build_page(posts, page, settings, "")


async def list_posts_by_category(
    repo: PostRepository,
    settings: Settings,
    category: str,
    page: int = 0,
    privileged: bool = False,
) -> PostPage:
    posts = await repo.get_posts_by_category(category, privileged=privileged)
    return _build_page(posts, page, settings, f"/blog/category/{category}")


async def list_posts_by_tag(
    repo: PostRepository,
    settings: Settings,
    tag: str,
    page: int = 0,
    privileged: bool = False,
) -> PostPage:
    posts = await repo.get_posts_by_tag(tag, privileged=privileged)
    return _build_page(posts, page, settings, f"/blog/tag/{tag}")


def post_detail(post: Post, settings: Settings) -> PostDetail:
    comments = post.comments if settings.display_comments else []
    return PostDetail(
        post=post,
        rendered_content=post.render_content(),
        comments_open=post.are_comments_open(settings.comments_close_after_days),
        link=post.get_encoded_link(),
        comments=[CommentView.from_comment(c) for c in comments],
    )


def blog_info(settings: Settings) -> BlogInfo:
    return BlogInfo(
        name=settings.blog_name,
        description=settings.blog_description,
        owner=settings.owner,
        posts_per_page=effective_page_size(settings.posts_per_page),
        list_view=settings.list_view,
        comments_close_after_days=settings.comments_close_after_days,
        display_comments=settings.display_comments,
    )


async def save_post_draft(
    repo: PostRepository, draft: PostDraft, now: datetime | None = None
) -> Post:
    """Create or update a post from an editor submission.

    Embedded base64 images are uploaded through the repository's file store
    first. The draft is then merged onto the post as it stands under the
    repository's write lock, so comments added meanwhile are kept.
    """
    now = now or utc_now()
    post_id = draft.id or new_post_id()
    title = draft.title.strip()

    # Reject before any file is uploaded
    validate_post(
        Post(
            id=post_id,
            title=title,
            slug=draft.slug.strip(),
            content=draft.content.strip(),
        )
    )
    content = await externalize_embedded_images(
        draft.content.strip(), repo.save_file
    )

    async def apply(post: Post) -> None:
        post.title = title
        post.content = content
        post.excerpt = draft.excerpt.strip()
        post.is_published = draft.is_published
        if draft.pub_date is not None:
            post.pub_date = as_utc(draft.pub_date)
        post.categories = _parse_terms(draft.categories)
        post.tags = _parse_terms(draft.tags)

        slug = draft.slug.strip() or create_slug(title)
        owner = await repo.get_post_by_slug(slug) if slug else None
        if owner is not None and owner.id != post.id:
            slug = create_slug(title + now.strftime("%Y%m%d%H%M"))
            logger.info("Slug taken by post %s, using %s", owner.id, slug)
        post.slug = slug

    return await repo.update_post(post_id, apply, create=True)


async def add_comment(
    repo: PostRepository,
    settings: Settings,
    post_id: str,
    draft: CommentDraft,
    privileged: bool = False,
    now: datetime | None = None,
) -> Comment | None:
    """Attach a comment to a post.

    Returns None when the post does not exist (for this caller) or its
    comment window has closed. A filled-in honeypot field yields the comment
    without storing it.
    """
    now = now or utc_now()
    created: Comment | None = None

    def attach(post: Post) -> bool:
        nonlocal created
        if not post.are_comments_open(settings.comments_close_after_days, now):
            return False
        created = Comment(
            author=draft.author,
            email=draft.email,
            content=draft.content,
            is_admin=privileged,
            pub_date=now,
        )
        if draft.website:
            logger.info("Discarding honeypot comment on post %s", post.id)
            return False
        post.comments.append(created)
        return True

    await repo.update_post(post_id, attach, privileged=privileged)
    return created


async def delete_comment(repo: PostRepository, post_id: str, comment_id: str) -> bool:
    target = comment_id.lower()

    def drop(post: Post) -> bool:
        kept = [c for c in post.comments if c.id.lower() != target]
        if len(kept) == len(post.comments):
            return False
        post.comments = kept
        return True

    return await repo.update_post(post_id, drop) is not None


async def delete_post(repo: PostRepository, post_id: str) -> bool:
    post = await repo.get_post_by_id(post_id, privileged=True)
    if post is None:
        return False
    await repo.delete_post(post)
    return True
