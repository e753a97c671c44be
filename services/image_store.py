"""
Permanent recipe image storage on local disk.

Images are re-encoded to WebP through Pillow (which also rejects
anything that is not a real image), downscaled to fit the configured
square, and named by content hash so re-storing the same bytes is a no-op.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
from io import BytesIO
from pathlib import Path

from PIL import Image

from config import settings

_LOG = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024


class ImageValidationError(Exception):
    """Raised when image bytes cannot be decoded or are too large."""


def to_webp(data: bytes, max_dimension: int) -> bytes:
    if len(data) > MAX_FILE_SIZE:
        raise ImageValidationError(f"Image too large: {len(data)} bytes (max {MAX_FILE_SIZE})")
    try:
        img = Image.open(BytesIO(data))
        img.verify()
        # verify() leaves the image unusable; reopen
        img = Image.open(BytesIO(data))
        img.load()
    except Exception as e:
        raise ImageValidationError(f"Invalid image data: {e}") from e

    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGB")
    img.thumbnail((max_dimension, max_dimension))

    out = BytesIO()
    img.save(out, format="WEBP", quality=80)
    return out.getvalue()


class LocalImageStore:
    def __init__(
        self,
        root: str | Path | None = None,
        public_path: str | None = None,
        max_dimension: int | None = None,
    ) -> None:
        self._root = Path(root or settings.image_storage_dir)
        self._public = (public_path or settings.image_public_path).rstrip("/")
        self._max_dim = max_dimension or settings.image_max_dimension

    @property
    def root(self) -> Path:
        return self._root

    async def store(self, data: bytes, recipe_id: int) -> str:
        encoded = await asyncio.to_thread(to_webp, data, self._max_dim)
        filename = f"{hashlib.md5(encoded).hexdigest()}.webp"
        path = self._root / filename
        await asyncio.to_thread(self._write, path, encoded)
        _LOG.info("stored image for recipe %s at %s", recipe_id, path)
        return f"{self._public}/{filename}"

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        if not path.exists():
            path.write_bytes(data)
