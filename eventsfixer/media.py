"""Object storage for uploaded media.

The database only keeps the storage path and public URL of an asset; the bytes
live in a :class:`LocalMediaStore` rooted at ``settings.media_dir`` and are
served under ``settings.media_base_url``.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from .config import settings

logger = logging.getLogger("uvicorn.error")

ALLOWED_MIME_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}

MEDIA_KINDS = ("hero", "gallery")


class LocalMediaStore:
    def __init__(self, root: Path, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid storage path: {path}")
        return self.root.joinpath(*relative.parts)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def put(self, path: str, data: bytes, content_type: str) -> str:
        """Write ``data`` at ``path`` and return its public URL."""
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("Stored %s (%d bytes, %s)", path, len(data), content_type)
        return self.public_url(path)

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        if target.exists():
            target.unlink()
            logger.info("Deleted %s", path)


def storage_path_for(event_id: str, asset_id: str, mime_type: str) -> str:
    return f"events/{event_id}/{asset_id}.{ALLOWED_MIME_TYPES[mime_type]}"


def default_store() -> LocalMediaStore:
    return LocalMediaStore(settings.media_dir, settings.media_base_url)
