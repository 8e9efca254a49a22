"""Flat-file storage backend: one JSON document per post on local disk."""

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from quill.models.post import Post
from quill.services.repository import stored_file_name, validate_path_segment

logger = logging.getLogger(__name__)

POSTS_DIR = "posts"
FILES_DIR = "files"


def _write_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` to a temp file beside ``path``, then rename over it."""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class FilePostStore:
    """Stores posts as ``<root>/posts/<id>.json`` and uploads under ``<root>/files``.

    Comments are embedded in their post's document, so deleting the document
    deletes the comments with it. Uploaded files are served by the web tier
    at ``<files_url_prefix>/<name>``.
    """

    def __init__(self, root: str | Path, files_url_prefix: str = "/files") -> None:
        self.root = Path(root)
        self.posts_dir = self.root / POSTS_DIR
        self.files_dir = self.root / FILES_DIR
        self.files_url_prefix = files_url_prefix.rstrip("/")

    def _post_path(self, post_id: str) -> Path:
        return self.posts_dir / f"{validate_path_segment(post_id)}.json"

    async def load_all(self) -> list[Post]:
        if not self.posts_dir.is_dir():
            return []

        posts: list[Post] = []
        for path in sorted(self.posts_dir.glob("*.json")):
            try:
                posts.append(Post.model_validate_json(path.read_bytes()))
            except ValidationError as e:
                logger.warning("Skipping unreadable post file %s: %s", path.name, e)
        return posts

    async def upsert(self, post: Post) -> None:
        path = self._post_path(post.id)
        self.posts_dir.mkdir(parents=True, exist_ok=True)
        _write_atomic(path, post.model_dump_json(indent=2).encode("utf-8"))

    async def delete(self, post: Post) -> None:
        self._post_path(post.id).unlink(missing_ok=True)

    async def save_file(
        self, data: bytes, file_name: str, suffix: str | None = None
    ) -> str:
        name = stored_file_name(file_name, suffix)
        self.files_dir.mkdir(parents=True, exist_ok=True)
        _write_atomic(self.files_dir / name, data)
        logger.info("Saved file %s (%d bytes)", name, len(data))
        return f"{self.files_url_prefix}/{name}"

    def check_connectivity(self) -> bool:
        """The store is usable if its root exists or can be created."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            return os.access(self.root, os.W_OK)
        except OSError:
            return False
