"""
Local upload directory reader.

Stored documents are referenced by their public fileUrl (`/uploads/<name>`).
Reads are synchronous per request and never cached.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

_PUBLIC_PREFIX = "/uploads/"


class DocumentNotFoundError(FileNotFoundError):
    pass


class UploadDirectory:

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, file_url: str) -> Path:
        """Map a fileUrl to a path inside the upload dir. Rejects traversal."""
        name = file_url.strip()
        if name.startswith(_PUBLIC_PREFIX):
            name = name[len(_PUBLIC_PREFIX):]
        name = name.lstrip("/")
        if not name:
            raise DocumentNotFoundError(f"empty file url: {file_url!r}")

        path = (self._root / name).resolve()
        if not path.is_relative_to(self._root):
            logger.warning("Rejected file url outside upload dir | file_url=%s", file_url)
            raise DocumentNotFoundError(f"file url outside upload dir: {file_url!r}")
        return path

    def read(self, file_url: str) -> bytes:
        path = self.resolve(file_url)
        if not path.is_file():
            raise DocumentNotFoundError(f"document not found: {file_url!r}")
        return path.read_bytes()


def get_upload_directory() -> UploadDirectory:
    from docflow.core.config import settings
    return UploadDirectory(settings.upload_dir)
