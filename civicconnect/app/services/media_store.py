"""
Media store for report images.

`LocalMediaStore` writes blobs under `settings.media_root/<category>/` and
returns a stable public URL under `settings.media_base_url`. All calls go
through the media circuit breaker; any failure surfaces as
InternalServiceError.
"""

import asyncio
import logging
import re
import uuid
from pathlib import Path
from typing import List, Tuple

from fastapi import UploadFile

from civicconnect.app.core.config import settings
from civicconnect.app.core.exceptions import InternalServiceError, InvalidArgumentError
from civicconnect.app.core.reliability import CircuitOpenError, media_circuit_breaker

logger = logging.getLogger("civicconnect.media")

CATEGORIES = {"report", "progress", "completion", "general"}
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _safe_filename(filename: str) -> str:
    name = _UNSAFE_CHARS.sub("_", Path(filename or "upload").name)
    return name or "upload"


class LocalMediaStore:
    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _write(self, relative: str, content: bytes) -> None:
        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as f:
            f.write(content)

    def _remove(self, relative: str) -> None:
        target = self.root / relative
        if target.exists():
            target.unlink()

    async def _save(self, content: bytes, filename: str, category: str) -> str:
        relative = f"{category}/{uuid.uuid4().hex}-{_safe_filename(filename)}"
        await asyncio.to_thread(self._write, relative, content)
        return f"{self.base_url}/{relative}"

    async def _delete(self, url: str) -> None:
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            raise ValueError(f"URL {url} is not managed by this store")
        await asyncio.to_thread(self._remove, url[len(prefix):])

    async def save(self, content: bytes, filename: str, category: str = "general") -> str:
        """Store a blob and return its URL."""
        if category not in CATEGORIES:
            category = "general"
        try:
            return await media_circuit_breaker.call(self._save, content, filename, category)
        except CircuitOpenError:
            logger.error("Media store circuit open, rejecting upload of %s", filename)
            raise InternalServiceError("Media storage is temporarily unavailable")
        except OSError:
            logger.exception("Failed to store media file %s", filename)
            raise InternalServiceError("Failed to store uploaded image")

    async def delete(self, url: str) -> None:
        try:
            await media_circuit_breaker.call(self._delete, url)
        except CircuitOpenError:
            raise InternalServiceError("Media storage is temporarily unavailable")
        except (OSError, ValueError):
            logger.exception("Failed to delete media file %s", url)
            raise InternalServiceError("Failed to delete image")


media_store = LocalMediaStore(settings.media_root, settings.media_base_url)


def get_media_store() -> LocalMediaStore:
    """FastAPI dependency; overridden in tests."""
    return media_store


async def read_images(files: List[UploadFile]) -> List[Tuple[bytes, str]]:
    """
    Read uploaded files, accepting images only and enforcing the size limit.
    """
    if not files:
        raise InvalidArgumentError("No images uploaded")

    blobs = []
    for upload in files:
        if not (upload.content_type or "").startswith("image/"):
            raise InvalidArgumentError("Not an image! Please upload only images.", details={"filename": upload.filename})
        content = await upload.read()
        if len(content) > settings.media_max_upload_bytes:
            raise InvalidArgumentError("Image exceeds the maximum upload size", details={"filename": upload.filename})
        blobs.append((content, upload.filename or "upload"))
    return blobs
