"""Azure Blob Storage backend for posts and uploaded files."""

import json
import logging
import mimetypes

from azure.core.exceptions import HttpResponseError, ResourceNotFoundError
from azure.identity import ManagedIdentityCredential
from azure.storage.blob import ContainerClient, ContentSettings
from pydantic import ValidationError

from quill.config import get_settings
from quill.models.post import Post
from quill.services.repository import stored_file_name, validate_path_segment

logger = logging.getLogger(__name__)

POSTS_PREFIX = "posts/"
FILES_PREFIX = "files/"

# Lazy singleton, lives for the process lifetime
_blog_container_client: ContainerClient | None = None


def _get_credential() -> ManagedIdentityCredential:
    """Return Managed Identity credential."""
    settings = get_settings()
    return ManagedIdentityCredential(client_id=settings.managed_identity_client_id)


def create_container_client(container_name: str) -> ContainerClient:
    """Create a ContainerClient for the given container."""
    settings = get_settings()
    account_url = f"https://{settings.azure_storage_account}.blob.core.windows.net"
    return ContainerClient(
        account_url=account_url,
        container_name=container_name,
        credential=_get_credential(),
    )


def _get_blog_container_client() -> ContainerClient:
    """Return a shared blob container client for blog content (lazy singleton)."""
    global _blog_container_client
    if _blog_container_client is None:
        _blog_container_client = create_container_client(
            get_settings().azure_blog_container
        )
    return _blog_container_client


class BlobPostStore:
    """Stores posts as ``posts/<id>.json`` blobs and uploads under ``files/``.

    Each post blob embeds its comments, so deleting it removes them too.
    """

    def __init__(
        self,
        container_client: ContainerClient | None = None,
        files_base_url: str | None = None,
    ) -> None:
        self._container_client = container_client
        self._files_base_url = files_base_url

    @property
    def client(self) -> ContainerClient:
        if self._container_client is None:
            self._container_client = _get_blog_container_client()
        return self._container_client

    def _files_url(self, blob_name: str) -> str:
        base = self._files_base_url or get_settings().azure_files_base_url
        if not base:
            base = self.client.url
        return f"{base.rstrip('/')}/{blob_name}"

    def check_connectivity(self) -> bool:
        """Lightweight storage connectivity check: lists 1 blob."""
        try:
            next(self.client.list_blobs(results_per_page=1).__iter__())
            return True
        except StopIteration:
            # Container exists but is empty, still connected
            return True
        except Exception:
            return False

    async def load_all(self) -> list[Post]:
        """Read every post blob. A missing container means no posts yet."""
        posts: list[Post] = []
        try:
            for blob_props in self.client.list_blobs(name_starts_with=POSTS_PREFIX):
                if not blob_props.name.endswith(".json"):
                    continue
                blob = self.client.get_blob_client(blob_props.name)
                data = blob.download_blob().readall()
                try:
                    posts.append(Post.model_validate(json.loads(data)))
                except (ValidationError, ValueError) as e:
                    logger.warning(
                        "Skipping unreadable post blob %s: %s", blob_props.name, e
                    )
        except ResourceNotFoundError:
            return []
        except HttpResponseError as e:
            logger.warning("Azure API error reading posts: %s", e.message)
            raise
        return posts

    async def upsert(self, post: Post) -> None:
        blob_name = f"{POSTS_PREFIX}{validate_path_segment(post.id)}.json"
        try:
            blob = self.client.get_blob_client(blob_name)
            blob.upload_blob(
                post.model_dump_json(indent=2),
                overwrite=True,
                content_settings=ContentSettings(content_type="application/json"),
            )
        except HttpResponseError as e:
            logger.warning("Azure API error writing post %s: %s", post.id, e.message)
            raise

    async def delete(self, post: Post) -> None:
        blob_name = f"{POSTS_PREFIX}{validate_path_segment(post.id)}.json"
        try:
            self.client.get_blob_client(blob_name).delete_blob()
        except ResourceNotFoundError:
            logger.info("Post blob %s already gone", blob_name)
        except HttpResponseError as e:
            logger.warning("Azure API error deleting post %s: %s", post.id, e.message)
            raise

    async def save_file(
        self, data: bytes, file_name: str, suffix: str | None = None
    ) -> str:
        """Upload a file and return its public URL."""
        blob_name = f"{FILES_PREFIX}{stored_file_name(file_name, suffix)}"
        content_type, _ = mimetypes.guess_type(blob_name)
        try:
            blob = self.client.get_blob_client(blob_name)
            blob.upload_blob(
                data,
                overwrite=True,
                content_settings=ContentSettings(
                    content_type=content_type or "application/octet-stream"
                ),
            )
        except HttpResponseError as e:
            logger.warning("Azure API error uploading %s: %s", blob_name, e.message)
            raise
        logger.info("Uploaded %s (%d bytes)", blob_name, len(data))
        return self._files_url(blob_name)
