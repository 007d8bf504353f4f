"""
Local filesystem storage for attachment artifacts.

Artifacts live flat in one shared upload directory under generated keys of the
form ``<millis>-<random><ext>``, so concurrent uploads never collide and no
lock is needed. Deletion never raises: it returns a DeletionResult the caller
inspects and logs.
"""
from __future__ import annotations

import logging
import os
import secrets
import time
from dataclasses import dataclass
from pathlib import Path

from starlette.datastructures import UploadFile

from tasktracker.core.exceptions import FileTooLargeException, StorageException

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class DeletionResult:
    key: str
    ok: bool
    error: str | None = None


class LocalFileStorage:

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self.root = Path(root)

    def generate_key(self, original_filename: str | None) -> str:
        """Timestamp plus random component, keeping the original extension."""
        ext = Path(original_filename or "").suffix.lower()
        return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9):09d}{ext}"

    def path_for(self, key: str) -> Path:
        """Resolve a key inside the upload directory, rejecting traversal."""
        root = self.root.resolve()
        path = (root / key).resolve()
        if path.parent != root:
            raise StorageException(f"Invalid storage key '{key}'")
        return path

    async def save(self, key: str, upload: UploadFile, *, max_bytes: int, max_mb: int) -> int:
        """
        Stream ``upload`` to ``key`` in chunks and return the number of bytes written.
        A partial file is removed if the size ceiling is crossed or the write fails.
        """
        path = self.path_for(key)
        written = 0
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            await upload.seek(0)
            with open(path, "xb") as fh:
                while chunk := await upload.read(CHUNK_SIZE):
                    written += len(chunk)
                    if written > max_bytes:
                        raise FileTooLargeException(max_mb, upload.filename)
                    fh.write(chunk)
        except FileTooLargeException:
            self._discard(path)
            raise
        except FileExistsError as exc:
            # Someone else's artifact; never remove it
            raise StorageException(f"Storage key '{key}' already in use") from exc
        except OSError as exc:
            self._discard(path)
            logger.error("Failed to write attachment %s: %s", key, exc)
            raise StorageException(f"Failed to store file '{upload.filename}'") from exc
        return written

    def delete(self, key: str) -> DeletionResult:
        """Remove an artifact; a missing file or OS error is reported, not raised."""
        try:
            self.path_for(key).unlink()
        except FileNotFoundError:
            return DeletionResult(key=key, ok=False, error="file not found")
        except (OSError, StorageException) as exc:
            return DeletionResult(key=key, ok=False, error=str(exc))
        return DeletionResult(key=key, ok=True)

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove partial upload %s: %s", path, exc)
