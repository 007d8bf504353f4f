"""
Attachment storage tests that run below the HTTP layer:
streaming size ceiling, key confinement, best-effort deletion and stale writers.
"""
from __future__ import annotations

import io
from pathlib import Path

import pytest
from sqlalchemy import update
from starlette.datastructures import Headers, UploadFile

from tasktracker.core.exceptions import (
    ConflictException,
    FileTooLargeException,
    StorageException,
)
from tasktracker.crud.task import crud_task
from tasktracker.models.task import Task
from tasktracker.models.user import User
from tasktracker.services.attachment_store import AttachmentStore
from tasktracker.services.file_storage import LocalFileStorage
from tasktracker.services.task_service import task_service


def _upload(name: str, data: bytes, content_type: str = "text/plain") -> UploadFile:
    # size deliberately omitted: only the streaming check can catch it
    return UploadFile(
        file=io.BytesIO(data),
        filename=name,
        headers=Headers({"content-type": content_type}),
    )


class TestLocalFileStorage:
    def test_generated_keys_are_unique_and_keep_extension(self, tmp_path: Path) -> None:
        storage = LocalFileStorage(tmp_path)
        keys = {storage.generate_key("Plan.PDF") for _ in range(50)}
        assert len(keys) == 50
        assert all(k.endswith(".pdf") for k in keys)

    def test_traversal_rejected(self, tmp_path: Path) -> None:
        storage = LocalFileStorage(tmp_path)
        with pytest.raises(StorageException):
            storage.path_for("../escape.txt")

    def test_delete_missing_reports_failure(self, tmp_path: Path) -> None:
        result = LocalFileStorage(tmp_path).delete("nope.txt")
        assert result.ok is False
        assert result.error == "file not found"

    @pytest.mark.asyncio
    async def test_save_streams_to_disk(self, tmp_path: Path) -> None:
        storage = LocalFileStorage(tmp_path / "up")
        written = await storage.save(
            "k.txt", _upload("a.txt", b"abc"), max_bytes=10, max_mb=1
        )
        assert written == 3
        assert (tmp_path / "up" / "k.txt").read_bytes() == b"abc"

    @pytest.mark.asyncio
    async def test_save_over_ceiling_leaves_nothing(self, tmp_path: Path) -> None:
        storage = LocalFileStorage(tmp_path)
        with pytest.raises(FileTooLargeException):
            await storage.save("k.txt", _upload("a.txt", b"x" * 11), max_bytes=10, max_mb=1)
        assert not (tmp_path / "k.txt").exists()


class TestAttachmentStoreBatch:
    @pytest.mark.asyncio
    async def test_failed_batch_discards_written_files(self, tmp_path: Path) -> None:
        store = AttachmentStore(
            LocalFileStorage(tmp_path),
            max_attachments=3,
            max_file_size_mb=1,
            allowed_types=["text/plain"],
        )
        uploads = [
            _upload("ok.txt", b"fine"),
            _upload("huge.txt", b"x" * (1024 * 1024 + 1)),
        ]
        with pytest.raises(FileTooLargeException):
            await store.store_batch(uploads)
        assert list(tmp_path.iterdir()) == []


class TestStaleTaskDelete:
    @pytest.mark.asyncio
    async def test_stale_delete_keeps_artifacts(
        self,
        session_factory,
        store: AttachmentStore,
        user: User,
        seed_task,
        stored_files,
    ) -> None:
        seeded = await seed_task(user)
        async with session_factory() as db:
            task = await crud_task.get_with_relations(db, seeded.id)
            await store.add_to_task(db, task=task, uploads=[_upload("keep.txt", b"k")])
            await db.commit()
        assert len(stored_files()) == 1

        async with session_factory() as db:
            task = await crud_task.get_with_relations(db, seeded.id)
            # A concurrent writer bumps the row behind this session's back
            await db.execute(
                update(Task)
                .where(Task.id == seeded.id)
                .values(version=Task.version + 1)
                .execution_options(synchronize_session=False)
            )
            with pytest.raises(ConflictException):
                await task_service.delete_task(db, task=task, current_user=user, store=store)
            await db.rollback()

        assert len(stored_files()) == 1
