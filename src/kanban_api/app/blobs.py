"""Blob storage for task attachments.

Beginner terms:
- Blob: the raw bytes of an uploaded file, stored outside the database.
- Storage path: the stable name a blob is stored under, e.g.
  `uploads/3f2a...-report.pdf`. The same string is the URL path the API
  serves the file from.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from pathlib import Path, PurePosixPath
from typing import Protocol

from .errors import StorageError

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_MAX_NAME_LENGTH = 120


class BlobStore(Protocol):
    def put(self, data: bytes, original_name: str) -> str: ...

    def exists(self, storage_path: str) -> bool: ...

    def delete(self, storage_path: str) -> None: ...


class LocalBlobStore:
    """Filesystem blob store: one file per blob inside a single directory."""

    def __init__(self, root: Path, url_prefix: str = "uploads") -> None:
        self.root = Path(root)
        self.url_prefix = url_prefix.strip("/")

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def put(self, data: bytes, original_name: str) -> str:
        """Write bytes under a fresh unique name and return its storage path.

        Names are prefixed with a random UUID so two uploads that share an
        original file name never overwrite each other.
        """
        name = f"{uuid.uuid4().hex}-{safe_blob_name(original_name)}"
        target = self.root / name
        try:
            self.ensure_root()
            # "x" mode refuses to clobber an existing file.
            handle = target.open("xb")
        except OSError as exc:
            logger.warning("blob event=write_failed name=%s error=%s", name, exc)
            raise StorageError(f"Failed to store file {original_name!r}: {exc}") from exc
        try:
            with handle:
                handle.write(data)
        except OSError as exc:
            # Drop the partially written file so no blob exists without a record.
            target.unlink(missing_ok=True)
            logger.warning("blob event=write_failed name=%s error=%s", name, exc)
            raise StorageError(f"Failed to store file {original_name!r}: {exc}") from exc
        storage_path = f"{self.url_prefix}/{name}"
        logger.info("blob event=stored path=%s size_bytes=%s", storage_path, len(data))
        return storage_path

    def exists(self, storage_path: str) -> bool:
        try:
            return self._resolve(storage_path).is_file()
        except StorageError:
            return False

    def delete(self, storage_path: str) -> None:
        """Remove one blob; raise StorageError when it cannot be removed."""
        target = self._resolve(storage_path)
        try:
            target.unlink()
        except FileNotFoundError as exc:
            logger.warning("blob event=delete_failed path=%s error=missing", storage_path)
            raise StorageError(f"File {storage_path} does not exist") from exc
        except OSError as exc:
            logger.warning("blob event=delete_failed path=%s error=%s", storage_path, exc)
            raise StorageError(f"Failed to delete file {storage_path}: {exc}") from exc
        logger.info("blob event=deleted path=%s", storage_path)

    def list_paths(self, *, min_age_seconds: float = 0) -> list[str]:
        """Storage paths of blobs on disk, sorted.

        With `min_age_seconds`, blobs modified more recently than that are left out.
        """
        if not self.root.is_dir():
            return []
        cutoff = time.time() - min_age_seconds
        return sorted(
            f"{self.url_prefix}/{entry.name}"
            for entry in self.root.iterdir()
            if entry.is_file() and (not min_age_seconds or entry.stat().st_mtime <= cutoff)
        )

    def _resolve(self, storage_path: str) -> Path:
        """Map a storage path back to a file inside the root directory."""
        path = PurePosixPath(storage_path)
        if (
            len(path.parts) != 2
            or path.parts[0] != self.url_prefix
            or path.name in {"", ".", ".."}
        ):
            raise StorageError(f"Storage path {storage_path!r} is outside the blob store")
        return self.root / path.name


def safe_blob_name(original_name: str) -> str:
    """Reduce a client-supplied file name to a safe single path component."""
    base = PurePosixPath(original_name.replace("\\", "/")).name
    cleaned = _UNSAFE_NAME_CHARS.sub("_", base).strip("._")
    return cleaned[:_MAX_NAME_LENGTH] or "file"
