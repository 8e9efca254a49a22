"""Blog post endpoints."""

import logging

from fastapi import APIRouter, Header, HTTPException, Path, Query, Request, status
from fastapi.responses import RedirectResponse

from quill.config import get_settings
from quill.models.post import (
    BlogInfo,
    Comment,
    CommentDraft,
    Post,
    PostDetail,
    PostDraft,
    PostPage,
)
from quill.services import blog
from quill.services.repository import PostValidationError, StorageError
from quill.services.storage import get_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/blog", tags=["blog"])
legacy_router = APIRouter(tags=["blog"])


def _is_editor(x_editor_key: str | None) -> bool:
    """Editors present the configured key; everyone else is a reader."""
    settings = get_settings()
    return bool(settings.editor_api_key) and x_editor_key == settings.editor_api_key


def _require_editor(x_editor_key: str | None) -> None:
    if not _is_editor(x_editor_key):
        raise HTTPException(status_code=403, detail="Invalid editor key")


def _storage_unavailable(exc: StorageError) -> HTTPException:
    logger.warning("Blog storage failure: %s", exc, exc_info=True)
    return HTTPException(status_code=503, detail="Blog storage unavailable")


@router.get("", response_model=PostPage)
async def list_blog_posts(
    page: int = Query(default=0, ge=0),
    x_editor_key: str | None = Header(default=None),
):
    """Get one page of posts, newest first."""
    try:
        return await blog.list_posts(
            get_repository(), get_settings(), page, _is_editor(x_editor_key)
        )
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@router.get("/info", response_model=BlogInfo)
async def get_blog_info():
    """Blog name, owner and display settings."""
    return blog.blog_info(get_settings())


@router.get("/categories", response_model=list[str])
async def list_categories(x_editor_key: str | None = Header(default=None)):
    """Get every category in use."""
    try:
        categories = await get_repository().get_categories(_is_editor(x_editor_key))
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    return sorted(categories)


@router.get("/tags", response_model=list[str])
async def list_tags(x_editor_key: str | None = Header(default=None)):
    """Get every tag in use."""
    try:
        tags = await get_repository().get_tags(_is_editor(x_editor_key))
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    return sorted(tags)


@router.get("/category/{category}", response_model=PostPage)
async def list_posts_in_category(
    category: str = Path(..., max_length=100),
    page: int = Query(default=0, ge=0),
    x_editor_key: str | None = Header(default=None),
):
    try:
        return await blog.list_posts_by_category(
            get_repository(),
            get_settings(),
            category,
            page,
            _is_editor(x_editor_key),
        )
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@router.get("/tag/{tag}", response_model=PostPage)
async def list_posts_with_tag(
    tag: str = Path(..., max_length=100),
    page: int = Query(default=0, ge=0),
    x_editor_key: str | None = Header(default=None),
):
    try:
        return await blog.list_posts_by_tag(
            get_repository(), get_settings(), tag, page, _is_editor(x_editor_key)
        )
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@router.get("/by-slug/{slug}", response_model=PostDetail)
async def get_blog_post_by_slug(
    slug: str = Path(..., max_length=200),
    x_editor_key: str | None = Header(default=None),
):
    """Get a single post by its slug, with the body rendered for display."""
    try:
        post = await get_repository().get_post_by_slug(
            slug, _is_editor(x_editor_key)
        )
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    if post is None:
        raise HTTPException(status_code=404, detail="Blog post not found")
    return blog.post_detail(post, get_settings())


@router.get("/{post_id}", response_model=PostDetail)
async def get_blog_post(
    post_id: str = Path(..., pattern=r"^[a-zA-Z0-9_-]+$", max_length=100),
    x_editor_key: str | None = Header(default=None),
):
    """Get a single post by ID."""
    try:
        post = await get_repository().get_post_by_id(
            post_id, _is_editor(x_editor_key)
        )
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    if post is None:
        raise HTTPException(status_code=404, detail="Blog post not found")
    return blog.post_detail(post, get_settings())


@router.post("", response_model=Post)
async def save_blog_post(
    draft: PostDraft, x_editor_key: str | None = Header(default=None)
):
    """Create or update a post. Embedded base64 images are uploaded first."""
    _require_editor(x_editor_key)
    try:
        post = await blog.save_post_draft(get_repository(), draft)
    except PostValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    logger.info("Editor saved post %s", post.id)
    return post


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_blog_post(
    post_id: str = Path(..., pattern=r"^[a-zA-Z0-9_-]+$", max_length=100),
    x_editor_key: str | None = Header(default=None),
):
    """Delete a post and all of its comments."""
    _require_editor(x_editor_key)
    try:
        deleted = await blog.delete_post(get_repository(), post_id)
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail="Blog post not found")


@router.post("/{post_id}/comments", response_model=Comment)
async def add_blog_comment(
    draft: CommentDraft,
    post_id: str = Path(..., pattern=r"^[a-zA-Z0-9_-]+$", max_length=100),
    x_editor_key: str | None = Header(default=None),
):
    """Add a reader comment while the post's comment window is open."""
    try:
        comment = await blog.add_comment(
            get_repository(),
            get_settings(),
            post_id,
            draft,
            _is_editor(x_editor_key),
        )
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    if comment is None:
        raise HTTPException(
            status_code=404, detail="Blog post not found or comments are closed"
        )
    return comment


@router.delete(
    "/{post_id}/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_blog_comment(
    post_id: str = Path(..., pattern=r"^[a-zA-Z0-9_-]+$", max_length=100),
    comment_id: str = Path(..., max_length=100),
    x_editor_key: str | None = Header(default=None),
):
    _require_editor(x_editor_key)
    try:
        deleted = await blog.delete_comment(get_repository(), post_id, comment_id)
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail="Comment not found")


@legacy_router.get("/post/{slug}")
async def redirect_legacy_post_url(
    request: Request, slug: str = Path(..., max_length=200)
):
    """Permanently redirect old ``/post/<slug>`` links to the slug lookup."""
    target = request.url_for("get_blog_post_by_slug", slug=slug)
    return RedirectResponse(url=str(target), status_code=301)
