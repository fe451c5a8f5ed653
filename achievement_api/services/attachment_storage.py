# achievement_api/services/attachment_storage.py
import os
import re
import uuid
from typing import Iterable, Optional, Tuple

import aiofiles
import aiofiles.os

from achievement_api.config import settings
from achievement_api.core.errors import ValidationFailed

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class AttachmentStorage:
    """Stores uploaded files under ``UPLOAD_DIR/<detail id>/``."""

    def __init__(
        self,
        root: Optional[str] = None,
        max_size: Optional[int] = None,
        allowed_types: Optional[Iterable[str]] = None,
        url_prefix: str = "/uploads",
    ):
        self.root = root or settings.UPLOAD_DIR
        self.max_size = max_size or settings.MAX_FILE_SIZE
        self.allowed_types = {t.lower() for t in (allowed_types or settings.ALLOWED_FILE_TYPES)}
        self.url_prefix = url_prefix.rstrip("/")

    def validate(self, file_name: Optional[str], size: int) -> str:
        """Return the lower-cased extension of an acceptable upload."""
        if not file_name:
            raise ValidationFailed("file name is required")
        extension = os.path.splitext(file_name)[1].lower()
        if extension not in self.allowed_types:
            raise ValidationFailed(f"unsupported file type, allowed: {', '.join(sorted(self.allowed_types))}")
        if size == 0:
            raise ValidationFailed("file is empty")
        if size > self.max_size:
            raise ValidationFailed(f"file exceeds {self.max_size // (1024 * 1024)}MB limit")
        return extension

    async def save(self, folder: str, file_name: str, content: bytes) -> Tuple[str, str]:
        """Write the file and return ``(path on disk, public url)``."""
        safe_name = _UNSAFE.sub("_", os.path.basename(file_name)) or "file"
        stored_name = f"{uuid.uuid4().hex[:12]}_{safe_name}"
        directory = os.path.join(self.root, folder)
        await aiofiles.os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, stored_name)
        async with aiofiles.open(path, "wb") as f:
            await f.write(content)
        return path, f"{self.url_prefix}/{folder}/{stored_name}"

    async def remove(self, path: str) -> None:
        await aiofiles.os.remove(path)
