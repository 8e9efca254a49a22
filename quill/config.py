"""Application configuration via environment variables."""

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings

DEFAULT_POSTS_PER_PAGE = 4


class PostListView(str, Enum):
    """How post listings should be displayed. Passed through, never interpreted."""

    TITLES_ONLY = "titles_only"
    TITLES_AND_EXCERPTS = "titles_and_excerpts"
    FULL_POSTS = "full_posts"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App
    debug: bool = False
    environment: str = "development"

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    # Blog
    blog_name: str = "Quill"
    blog_description: str = "A personal blog"
    owner: str = "The Owner"
    comments_close_after_days: int = 10
    display_comments: bool = True
    posts_per_page: int = DEFAULT_POSTS_PER_PAGE
    list_view: PostListView = PostListView.TITLES_AND_EXCERPTS

    # Storage backend: "file" (JSON files on disk) or "blob" (Azure Blob Storage)
    storage_backend: str = "file"
    content_root: str = "data"

    # Azure Blob Storage
    azure_storage_account: str = "quillstorage"
    azure_blog_container: str = "blog"
    # Public base URL for uploaded files; defaults to the container URL
    azure_files_base_url: str = ""

    # Azure User-Assigned Managed Identity
    managed_identity_client_id: str = ""

    # Editor API key (grants privileged access to drafts and write endpoints)
    editor_api_key: str = ""

    model_config = {"env_file": ".env", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
