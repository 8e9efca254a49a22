"""Storage backend selection and the process-wide post repository."""

import logging

from quill.config import Settings, get_settings
from quill.services.blob_storage import BlobPostStore
from quill.services.file_store import FilePostStore
from quill.services.repository import CachedPostRepository

logger = logging.getLogger(__name__)

# Lazy singletons, live for the process lifetime
_store: FilePostStore | BlobPostStore | None = None
_repository: CachedPostRepository | None = None


def build_store(settings: Settings) -> FilePostStore | BlobPostStore:
    """Create the backing store named by ``settings.storage_backend``."""
    backend = settings.storage_backend.lower()
    if backend == "file":
        return FilePostStore(settings.content_root)
    if backend == "blob":
        return BlobPostStore(files_base_url=settings.azure_files_base_url or None)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend!r}")


def get_store() -> FilePostStore | BlobPostStore:
    global _store
    if _store is None:
        _store = build_store(get_settings())
        logger.info("Using %s storage backend", type(_store).__name__)
    return _store


def get_repository() -> CachedPostRepository:
    """Return the shared cached repository (lazy singleton)."""
    global _repository
    if _repository is None:
        store = get_store()
        _repository = CachedPostRepository(store, files=store)
    return _repository
