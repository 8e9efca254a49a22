"""Shared fixtures for quill tests."""

import pytest

from quill.tests.helpers import NOW, InMemoryPostStore


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Reset all module-level singletons and caches between tests."""
    yield

    # 1. Settings LRU cache
    from quill.config import get_settings

    get_settings.cache_clear()

    # 2. Blob storage singleton
    import quill.services.blob_storage as blob_mod

    blob_mod._blog_container_client = None

    # 3. Store + repository singletons
    import quill.services.storage as storage_mod

    storage_mod._store = None
    storage_mod._repository = None

    # 4. Health check cache
    import quill.main as main_mod

    main_mod._health_cache = None


@pytest.fixture
def mock_settings(monkeypatch, tmp_path):
    """Provide a Settings object with safe test defaults."""
    from quill.config import Settings, get_settings

    test_settings = Settings(
        storage_backend="file",
        content_root=str(tmp_path / "content"),
        azure_storage_account="teststorage",
        azure_blog_container="test-blog",
        managed_identity_client_id="test-client-id",
        editor_api_key="test-editor-key",
        comments_close_after_days=10,
        posts_per_page=4,
    )

    get_settings.cache_clear()
    monkeypatch.setattr("quill.config.get_settings", lambda: test_settings)

    # Patch get_settings in all modules that import it directly
    # (from quill.config import get_settings creates a local binding that
    # the quill.config monkeypatch above does not affect)
    for mod_path in [
        "quill.services.blob_storage",
        "quill.services.storage",
        "quill.routers.blog",
        "quill.main",
    ]:
        monkeypatch.setattr(f"{mod_path}.get_settings", lambda: test_settings)

    return test_settings


@pytest.fixture
def store():
    return InMemoryPostStore()


@pytest.fixture
def repo(store):
    from quill.services.repository import CachedPostRepository

    return CachedPostRepository(store, files=store, clock=lambda: NOW)
