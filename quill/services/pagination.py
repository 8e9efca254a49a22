"""Page arithmetic shared by every post listing."""

from collections.abc import Sequence
from typing import TypeVar

from quill.config import DEFAULT_POSTS_PER_PAGE

T = TypeVar("T")


def effective_page_size(posts_per_page: int) -> int:
    """Configured page size, or the default when it is not positive."""
    return posts_per_page if posts_per_page > 0 else DEFAULT_POSTS_PER_PAGE


def total_pages(total: int, posts_per_page: int) -> int:
    """Index of the last page, as the listing links have always counted it.

    This is ``total // per_page`` minus one when the division is exact, so
    nine posts at four per page gives 2 and eight posts gives 1. Linked pages
    run from 0 to this value.
    """
    per_page = effective_page_size(posts_per_page)
    return total // per_page - (1 if total % per_page == 0 else 0)


def page_window(items: Sequence[T], page: int, posts_per_page: int) -> list[T]:
    """Items on 0-based ``page``; empty when the page is past the end."""
    per_page = effective_page_size(posts_per_page)
    start = per_page * max(page, 0)
    return list(items[start : start + per_page])
