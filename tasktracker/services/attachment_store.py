"""
Attachment lifecycle: upload, retrieval and deletion of the files bound to a task.

The on-disk artifact and the task's attachment list move together:

* uploads validate the whole batch first, then write every file, and only
  then append records; if anything fails, files written so far are removed;
* deletions remove the artifact first (best effort, failures are logged)
  and then drop the record;
* a replacement writes the new batch and swaps the records before the old
  artifacts are removed.

A task never references a file that was not written. The reverse (an orphaned
file after a crash between the two steps) is tolerated.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from tasktracker.core.config import Settings, settings
from tasktracker.core.exceptions import (
    FileTooLargeException,
    NotFoundException,
    StorageException,
    ValidationException,
)
from tasktracker.db.base import utcnow
from tasktracker.models.attachment import Attachment
from tasktracker.models.task import Task
from tasktracker.services.file_storage import DeletionResult, LocalFileStorage

logger = logging.getLogger(__name__)

FRIENDLY_TYPE_NAMES = {
    "application/pdf": "PDF",
    "application/msword": "DOC",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "DOCX",
    "text/plain": "TXT",
}


@dataclass(frozen=True)
class StoredFile:
    key: str
    filename: str
    mime_type: str
    size: int


class AttachmentStore:

    def __init__(
        self,
        storage: LocalFileStorage,
        *,
        max_attachments: int,
        max_file_size_mb: int,
        allowed_types: Iterable[str],
    ) -> None:
        self.storage = storage
        self.max_attachments = max_attachments
        self.max_file_size_mb = max_file_size_mb
        self.allowed_types = frozenset(allowed_types)

    @classmethod
    def from_settings(cls, config: Settings, root: str | Path | None = None) -> "AttachmentStore":
        return cls(
            LocalFileStorage(root or config.UPLOAD_DIR),
            max_attachments=config.MAX_ATTACHMENTS_PER_TASK,
            max_file_size_mb=config.MAX_FILE_SIZE_MB,
            allowed_types=config.ALLOWED_ATTACHMENT_TYPES,
        )

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    # ── Validation ────────────────────────────────────────────────────────────

    def validate_batch(self, uploads: Sequence[UploadFile], *, existing: int) -> None:
        """Reject the batch before anything touches the disk."""
        if existing + len(uploads) > self.max_attachments:
            raise ValidationException(
                f"Too many files. A task can hold at most {self.max_attachments} attachments",
                fields=["attachments"],
            )
        for upload in uploads:
            if upload.content_type not in self.allowed_types:
                allowed = ", ".join(
                    FRIENDLY_TYPE_NAMES.get(t, t) for t in sorted(self.allowed_types)
                )
                raise ValidationException(
                    f"Invalid file type for '{upload.filename}'. Allowed types: {allowed}",
                    fields=["attachments"],
                )
            if upload.size is not None and upload.size > self.max_file_size_bytes:
                raise FileTooLargeException(self.max_file_size_mb, upload.filename)

    # ── Storage ───────────────────────────────────────────────────────────────

    async def store_batch(self, uploads: Sequence[UploadFile]) -> list[StoredFile]:
        """Write every upload or none of them."""
        stored: list[StoredFile] = []
        try:
            for upload in uploads:
                key = self.storage.generate_key(upload.filename)
                size = await self.storage.save(
                    key,
                    upload,
                    max_bytes=self.max_file_size_bytes,
                    max_mb=self.max_file_size_mb,
                )
                stored.append(
                    StoredFile(
                        key=key,
                        filename=upload.filename or key,
                        mime_type=upload.content_type or "application/octet-stream",
                        size=size,
                    )
                )
        except Exception:
            self.discard(stored)
            raise
        return stored

    def discard(self, stored: Iterable[StoredFile]) -> None:
        """Remove artifacts that will not be referenced after all."""
        for item in stored:
            result = self.storage.delete(item.key)
            if not result.ok:
                logger.warning(
                    "Could not discard unreferenced artifact %s: %s", item.key, result.error
                )

    def purge(self, attachments: Iterable[Attachment]) -> list[DeletionResult]:
        """Best-effort removal of the artifacts behind ``attachments``."""
        results = []
        for attachment in attachments:
            result = self.storage.delete(attachment.storage_key)
            if not result.ok:
                logger.warning(
                    "Failed to delete artifact %s of attachment %s: %s",
                    attachment.storage_key,
                    attachment.id,
                    result.error,
                )
            results.append(result)
        return results

    # ── Task-level operations ─────────────────────────────────────────────────

    async def add_to_task(
        self,
        db: AsyncSession,
        *,
        task: Task,
        uploads: Sequence[UploadFile],
    ) -> list[Attachment]:
        """Validate, write, then append records in upload order."""
        if not uploads:
            return []

        self.validate_batch(uploads, existing=len(task.attachments))
        stored = await self.store_batch(uploads)
        added = await self._attach(db, task=task, stored=stored)

        logger.info(
            "Stored %d attachment(s) on task %s: %s",
            len(added),
            task.id,
            ", ".join(a.storage_key for a in added),
        )
        return added

    async def replace_on_task(
        self,
        db: AsyncSession,
        *,
        task: Task,
        uploads: Sequence[UploadFile],
    ) -> list[DeletionResult]:
        """
        Swap the task's whole attachment list for ``uploads``.

        The new files are written and the records swapped before any old
        artifact is touched, so a failed write leaves the previous set intact.
        Old artifacts are removed only once the swap has been flushed.
        """
        self.validate_batch(uploads, existing=0)
        previous = list(task.attachments)
        stored = await self.store_batch(uploads)

        task.attachments.clear()
        added = await self._attach(db, task=task, stored=stored)
        results = self.purge(previous)

        logger.info(
            "Replaced %d attachment(s) on task %s with %d",
            len(previous),
            task.id,
            len(added),
        )
        return results

    async def _attach(
        self,
        db: AsyncSession,
        *,
        task: Task,
        stored: Sequence[StoredFile],
    ) -> list[Attachment]:
        try:
            added = [
                Attachment(
                    filename=item.filename,
                    storage_key=item.key,
                    mime_type=item.mime_type,
                    size=item.size,
                )
                for item in stored
            ]
            for attachment in added:
                task.attachments.append(attachment)
            task.updated_at = utcnow()
            db.add(task)
            await db.flush()
        except Exception:
            self.discard(stored)
            raise
        return added

    def find(self, task: Task, attachment_id: uuid.UUID) -> Attachment:
        for attachment in task.attachments:
            if attachment.id == attachment_id:
                return attachment
        raise NotFoundException("Attachment", str(attachment_id))

    def open(self, task: Task, attachment_id: uuid.UUID) -> tuple[Attachment, Path]:
        """Locate the artifact for download."""
        attachment = self.find(task, attachment_id)
        path = self.storage.path_for(attachment.storage_key)
        if not path.is_file():
            logger.error(
                "Artifact %s for attachment %s is missing", attachment.storage_key, attachment.id
            )
            raise StorageException("Attachment file is not available")
        return attachment, path

    async def remove_from_task(
        self,
        db: AsyncSession,
        *,
        task: Task,
        attachment_id: uuid.UUID,
    ) -> DeletionResult:
        """Delete the artifact (best effort), then drop the record."""
        attachment = self.find(task, attachment_id)
        await self.touch(db, task)
        [result] = self.purge([attachment])

        task.attachments.remove(attachment)
        db.add(task)
        await db.flush()

        logger.info("Removed attachment %s from task %s", attachment_id, task.id)
        return result

    @staticmethod
    async def touch(db: AsyncSession, task: Task) -> None:
        """Bump updated_at and the version so a stale writer fails before any file is removed."""
        task.updated_at = utcnow()
        db.add(task)
        await db.flush()


attachment_store = AttachmentStore.from_settings(settings)
