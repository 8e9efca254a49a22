"""Tests for blog workflows: listings, editor saves, comments, deletes."""

import asyncio
from datetime import timedelta

import pytest
from pydantic import ValidationError

from quill.config import PostListView, Settings
from quill.models.post import Comment, CommentDraft, PostDraft
from quill.services import blog
from quill.services.repository import CachedPostRepository, PostValidationError
from quill.tests.helpers import NOW, InMemoryPostStore, make_post


@pytest.fixture
def settings():
    return Settings(
        posts_per_page=4,
        comments_close_after_days=10,
        list_view=PostListView.FULL_POSTS,
    )


def _repo(*posts):
    store = InMemoryPostStore(posts)
    return store, CachedPostRepository(store, files=store, clock=lambda: NOW)


class TestListings:
    async def test_first_page_of_nine(self, settings):
        _, repo = _repo(*(make_post(f"p{i}", days_ago=i + 1) for i in range(9)))

        page = await blog.list_posts(repo, settings, page=0)

        assert [p.id for p in page.posts] == ["p0", "p1", "p2", "p3"]
        assert page.total_posts == 9
        assert page.total_pages == 2
        assert page.posts_per_page == 4
        assert page.list_view is PostListView.FULL_POSTS
        assert page.prev_link == "/1/"
        assert page.next_link == "/"

    async def test_last_page_of_nine(self, settings):
        _, repo = _repo(*(make_post(f"p{i}", days_ago=i + 1) for i in range(9)))

        page = await blog.list_posts(repo, settings, page=2)

        assert [p.id for p in page.posts] == ["p8"]
        assert page.prev_link == "/3/"
        assert page.next_link == "/1/"

    async def test_zero_page_size_uses_default(self, settings):
        settings.posts_per_page = 0
        _, repo = _repo(*(make_post(f"p{i}", days_ago=i + 1) for i in range(6)))

        page = await blog.list_posts(repo, settings)

        assert page.posts_per_page == 4
        assert len(page.posts) == 4

    async def test_unpublished_and_future_only_for_privileged(self, settings):
        _, repo = _repo(
            make_post("live"),
            make_post("draft", is_published=False),
            make_post("future", days_ago=-1),
        )

        public = await blog.list_posts(repo, settings)
        editor = await blog.list_posts(repo, settings, privileged=True)

        assert [p.id for p in public.posts] == ["live"]
        assert {p.id for p in editor.posts} == {"live", "draft", "future"}

    async def test_category_listing_links(self, settings):
        _, repo = _repo(make_post("a", categories=["python"]), make_post("b"))

        page = await blog.list_posts_by_category(repo, settings, "Python")

        assert [p.id for p in page.posts] == ["a"]
        assert page.prev_link == "/blog/category/Python/1/"
        assert page.next_link == "/blog/category/Python/"

    async def test_tag_listing(self, settings):
        _, repo = _repo(make_post("a", tags=["web"]), make_post("b", tags=["ml"]))

        page = await blog.list_posts_by_tag(repo, settings, "ml", page=0)

        assert [p.id for p in page.posts] == ["b"]
        assert page.prev_link == "/blog/tag/ml/1/"


class TestSavePostDraft:
    async def test_creates_post_with_generated_slug(self):
        store, repo = _repo()
        draft = PostDraft(
            title="  Héllo World! ",
            content=" <p>Body</p> ",
            excerpt=" Short ",
            categories="Python, AI ,,",
            tags="Web",
        )

        post = await blog.save_post_draft(repo, draft, now=NOW)

        assert post.slug == "hello-world"
        assert post.title == "Héllo World!"
        assert post.content == "<p>Body</p>"
        assert post.excerpt == "Short"
        assert post.categories == ["python", "ai"]
        assert post.tags == ["web"]
        assert post.id in store.posts

    async def test_explicit_slug_is_kept(self):
        _, repo = _repo()
        draft = PostDraft(title="Title", slug=" custom-slug ", content="x")

        post = await blog.save_post_draft(repo, draft, now=NOW)

        assert post.slug == "custom-slug"

    async def test_slug_collision_gets_timestamp(self):
        _, repo = _repo(make_post("other", title="Hello", slug="hello"))
        draft = PostDraft(title="Hello", content="x")

        post = await blog.save_post_draft(repo, draft, now=NOW)

        assert post.slug == "hello202603011200"

    async def test_updating_same_post_keeps_slug(self):
        _, repo = _repo(make_post("p1", title="Hello", slug="hello"))
        draft = PostDraft(id="p1", title="Hello", content="new body")

        post = await blog.save_post_draft(repo, draft, now=NOW)

        assert post.slug == "hello"
        assert post.content == "new body"

    async def test_update_preserves_comments_and_pub_date(self):
        existing = make_post("p1", days_ago=3)
        existing.comments.append(Comment(author="a", email="a@b.c", content="hi"))
        _, repo = _repo(existing)

        post = await blog.save_post_draft(
            repo, PostDraft(id="p1", title="New", content="x"), now=NOW
        )

        assert len(post.comments) == 1
        assert post.pub_date == NOW - timedelta(days=3)

    async def test_update_does_not_mutate_cached_post_before_save(self):
        _, repo = _repo(make_post("p1", title="Old"))
        cached = await repo.get_post_by_id("p1")

        await blog.save_post_draft(
            repo, PostDraft(id="p1", title="New", content="x"), now=NOW
        )

        assert cached.title == "Old"
        assert (await repo.get_post_by_id("p1")).title == "New"

    async def test_embedded_images_are_externalized_before_save(self):
        store, repo = _repo()
        draft = PostDraft(
            title="Pics",
            content=(
                '<img src="data:image/png;base64,AAAA" data-filename="pic.png">'
                '<img src="data:image/png;base64,AAAA" data-filename="evil.exe">'
            ),
        )

        post = await blog.save_post_draft(repo, draft, now=NOW)

        assert post.content == (
            '<img src="/files/pic.png">'
            '<img src="data:image/png;base64,AAAA" data-filename="evil.exe">'
        )
        assert store.files == {"pic.png": b"\x00\x00\x00"}
        assert store.posts[post.id].content == post.content

    async def test_blank_content_rejected_before_upload(self):
        store, repo = _repo()
        draft = PostDraft(title="T", content="   ")

        with pytest.raises(PostValidationError):
            await blog.save_post_draft(repo, draft, now=NOW)

        assert store.posts == {}
        assert store.files == {}


class TestComments:
    async def test_add_comment(self, settings):
        store, repo = _repo(make_post("p1", days_ago=1))
        draft = CommentDraft(author=" Ann ", email="ann@example.com", content=" Hi ")

        comment = await blog.add_comment(repo, settings, "p1", draft, now=NOW)

        assert comment.author == "Ann"
        assert comment.content == "Hi"
        assert comment.is_admin is False
        assert [c.id for c in store.posts["p1"].comments] == [comment.id]
        assert (await repo.get_post_by_id("p1")).comments[0].id == comment.id

    async def test_editor_comment_is_admin(self, settings):
        _, repo = _repo(make_post("p1"))
        draft = CommentDraft(author="Me", email="me@example.com", content="Reply")

        comment = await blog.add_comment(
            repo, settings, "p1", draft, privileged=True, now=NOW
        )

        assert comment.is_admin is True

    async def test_comments_appended_in_order(self, settings):
        store, repo = _repo(make_post("p1"))
        for text in ("first", "second", "third"):
            await blog.add_comment(
                repo,
                settings,
                "p1",
                CommentDraft(author="a", email="a@b.c", content=text),
                now=NOW,
            )

        assert [c.content for c in store.posts["p1"].comments] == [
            "first",
            "second",
            "third",
        ]

    async def test_honeypot_discards_silently(self, settings):
        store, repo = _repo(make_post("p1"))
        draft = CommentDraft(
            author="Bot", email="bot@spam.io", content="Buy", website="http://spam"
        )

        comment = await blog.add_comment(repo, settings, "p1", draft, now=NOW)

        assert comment is not None
        assert store.posts["p1"].comments == []

    async def test_closed_window_rejects(self, settings):
        _, repo = _repo(make_post("p1", days_ago=11))
        draft = CommentDraft(author="a", email="a@b.c", content="late")

        assert await blog.add_comment(repo, settings, "p1", draft, now=NOW) is None

    async def test_missing_post_rejects(self, settings):
        _, repo = _repo()
        draft = CommentDraft(author="a", email="a@b.c", content="x")

        assert await blog.add_comment(repo, settings, "nope", draft, now=NOW) is None

    async def test_delete_comment(self):
        post = make_post("p1")
        post.comments.append(Comment(id="c1", author="a", email="a@b.c", content="x"))
        post.comments.append(Comment(id="c2", author="b", email="b@b.c", content="y"))
        store, repo = _repo(post)

        assert await blog.delete_comment(repo, "p1", "C1") is True
        assert [c.id for c in store.posts["p1"].comments] == ["c2"]
        assert await blog.delete_comment(repo, "p1", "c1") is False
        assert await blog.delete_comment(repo, "missing", "c2") is False


class TestDeletePost:
    async def test_delete_post_cascades(self):
        post = make_post("p1")
        post.comments.append(Comment(author="a", email="a@b.c", content="x"))
        store, repo = _repo(post)

        assert await blog.delete_post(repo, "p1") is True

        assert "p1" not in store.posts
        assert await repo.get_post_by_id("p1", privileged=True) is None

    async def test_delete_unknown_post(self):
        _, repo = _repo()
        assert await blog.delete_post(repo, "nope") is False

    async def test_editor_can_delete_draft(self):
        _, repo = _repo(make_post("d", is_published=False))
        assert await blog.delete_post(repo, "d") is True


def test_post_detail(settings):
    post = make_post("p1", slug="my post", content="[youtube:abc]")
    detail = blog.post_detail(post, settings)

    assert "/embed/abc?" in detail.rendered_content
    assert detail.link == "/blog/my+post/"
    assert detail.post.id == "p1"


class TestConcurrentWrites:
    """Writes to one post that overlap must all survive."""

    async def test_overlapping_comments_are_all_kept(self, settings):
        store, repo = _repo(make_post("p1"))
        store.delay = 0.01

        await asyncio.gather(
            *(
                blog.add_comment(
                    repo,
                    settings,
                    "p1",
                    CommentDraft(author="a", email="a@b.c", content=text),
                    now=NOW,
                )
                for text in ("one", "two", "three")
            )
        )

        cached = await repo.get_post_by_id("p1")
        assert sorted(c.content for c in cached.comments) == ["one", "three", "two"]
        assert len(store.posts["p1"].comments) == 3

    async def test_editor_save_keeps_comment_added_during_upload(self, settings):
        store, repo = _repo(make_post("p1", title="Old"))
        store.delay = 0.01
        await repo.get_posts()
        draft = PostDraft(
            id="p1",
            title="New",
            content='<img src="data:image/png;base64,AAAA" data-filename="pic.png">',
        )

        saved, comment = await asyncio.gather(
            blog.save_post_draft(repo, draft, now=NOW),
            blog.add_comment(
                repo,
                settings,
                "p1",
                CommentDraft(author="a", email="a@b.c", content="hi"),
                now=NOW,
            ),
        )

        assert saved.title == "New"
        assert saved.content == '<img src="/files/pic.png">'
        assert [c.id for c in saved.comments] == [comment.id]
        assert [c.id for c in store.posts["p1"].comments] == [comment.id]
        assert store.posts["p1"].title == "New"

    async def test_overlapping_add_and_delete_comment(self, settings):
        post = make_post("p1")
        post.comments.append(Comment(id="c1", author="a", email="a@b.c", content="x"))
        store, repo = _repo(post)
        store.delay = 0.01

        deleted, added = await asyncio.gather(
            blog.delete_comment(repo, "p1", "c1"),
            blog.add_comment(
                repo,
                settings,
                "p1",
                CommentDraft(author="b", email="b@b.c", content="y"),
                now=NOW,
            ),
        )

        assert deleted is True
        assert [c.id for c in store.posts["p1"].comments] == [added.id]


async def test_unsafe_draft_id_rejected_before_upload():
    store, repo = _repo()
    draft = PostDraft.model_construct(
        id="../evil",
        title="T",
        slug="",
        content='<img src="data:image/png;base64,AAAA" data-filename="pic.png">',
        excerpt="",
        is_published=True,
        pub_date=None,
        categories="",
        tags="",
    )

    with pytest.raises(PostValidationError):
        await blog.save_post_draft(repo, draft, now=NOW)

    assert store.files == {}
    assert store.posts == {}


def test_draft_model_rejects_unsafe_id():
    with pytest.raises(ValidationError):
        PostDraft(id="../evil", title="T", content="x")


def test_post_detail_lists_comments_for_display(settings):
    post = make_post("p1")
    post.comments.append(
        Comment(id="c1", author="Ann", email="ann@example.com", content="Hi")
    )

    detail = blog.post_detail(post, settings)

    (view,) = detail.comments
    assert view.id == "c1"
    assert view.author == "Ann"
    assert view.content == "Hi"
    assert view.avatar_url.startswith("https://www.gravatar.com/avatar/")


def test_post_detail_hides_comments_when_disabled(settings):
    settings.display_comments = False
    post = make_post("p1")
    post.comments.append(Comment(author="Ann", email="ann@example.com", content="Hi"))

    assert blog.post_detail(post, settings).comments == []


def test_blog_info(settings):
    settings.blog_name = "Notes"
    settings.owner = "Ann"
    settings.posts_per_page = 0

    info = blog.blog_info(settings)

    assert info.name == "Notes"
    assert info.owner == "Ann"
    assert info.posts_per_page == 4
    assert info.list_view is PostListView.FULL_POSTS
    assert info.display_comments is True
