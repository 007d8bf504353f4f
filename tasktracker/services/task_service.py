"""
Task business logic service.
Creates, updates and deletes tasks, keeping their attachments in step through
the AttachmentStore. Ownership is already checked by the route guard when a
task reaches update_task/delete_task.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from starlette.datastructures import UploadFile

from tasktracker.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from tasktracker.core.permissions import Identity
from tasktracker.crud.task import crud_task
from tasktracker.crud.user import crud_user
from tasktracker.models.task import Task
from tasktracker.models.user import User
from tasktracker.schemas.task import TaskCreate, TaskFilter, TaskUpdate
from tasktracker.services.attachment_store import AttachmentStore
from tasktracker.services.file_storage import DeletionResult
from tasktracker.services.query_builder import build_task_query

logger = logging.getLogger(__name__)

STALE_WRITE_MESSAGE = "Task was modified by another request; reload it and retry"


class TaskService:

    async def create_task(
        self,
        db: AsyncSession,
        *,
        task_in: TaskCreate,
        uploads: Sequence[UploadFile],
        current_user: User,
        store: AttachmentStore,
    ) -> Task:
        """
        Create a task owned by the caller, together with its uploaded files.
        Nothing is persisted if the assignee or any file is rejected.
        """
        await self._ensure_assignee(db, task_in.assigned_to_id)
        store.validate_batch(uploads, existing=0)

        task = await crud_task.create_task(
            db, obj_in=task_in, created_by_id=current_user.id
        )
        if uploads:
            await store.add_to_task(db, task=task, uploads=uploads)
        else:
            await db.flush()

        logger.info(
            "Task %s created by user %s with %d attachment(s)",
            task.id,
            current_user.id,
            len(uploads),
        )
        return await self._reload(db, task.id)

    async def get_task(self, db: AsyncSession, *, task_id: uuid.UUID) -> Task:
        task = await crud_task.get_with_relations(db, task_id)
        if task is None:
            raise NotFoundException("Task", str(task_id))
        return task

    async def list_tasks(
        self,
        db: AsyncSession,
        *,
        filters: TaskFilter,
        current_user: User,
    ) -> tuple[list[Task], int]:
        """List tasks visible to the caller with filters, sort and paging applied."""
        query = build_task_query(filters, Identity.of(current_user))
        return await crud_task.list_page(db, query=query)

    async def update_task(
        self,
        db: AsyncSession,
        *,
        task: Task,
        task_in: TaskUpdate,
        uploads: Sequence[UploadFile] = (),
        remove_attachments: bool = False,
        current_user: User,
        store: AttachmentStore,
    ) -> Task:
        """
        Merge the supplied fields over the task.

        New files are appended unless ``remove_attachments`` is set, in which
        case they replace the whole list; the old artifacts are deleted only
        after the new ones are stored and the records swapped.
        """
        cleared = task_in.cleared_fields()
        if cleared:
            raise ValidationException.for_fields(cleared)

        if task_in.version is not None and task_in.version != task.version:
            raise ConflictException(STALE_WRITE_MESSAGE)

        changes = task_in.changes()
        if "assigned_to_id" in changes:
            await self._ensure_assignee(db, changes["assigned_to_id"])  # type: ignore[arg-type]

        store.validate_batch(
            uploads, existing=0 if remove_attachments else len(task.attachments)
        )

        try:
            if changes:
                await crud_task.update(db, db_obj=task, obj_in=changes)
            if remove_attachments:
                await store.replace_on_task(db, task=task, uploads=uploads)
            elif uploads:
                await store.add_to_task(db, task=task, uploads=uploads)
        except StaleDataError as exc:
            raise ConflictException(STALE_WRITE_MESSAGE) from exc

        logger.info(
            "Task %s updated by user %s: fields=%s replaced=%s added=%d",
            task.id,
            current_user.id,
            sorted(changes),
            remove_attachments,
            len(uploads),
        )
        return await self._reload(db, task.id)

    async def delete_task(
        self,
        db: AsyncSession,
        *,
        task: Task,
        current_user: User,
        store: AttachmentStore,
    ) -> list[DeletionResult]:
        """
        Remove every artifact (failures are logged, not raised), then the record.
        """
        task_id = task.id
        try:
            await store.touch(db, task)
            results = store.purge(list(task.attachments))
            await crud_task.remove_task(db, task=task)
        except StaleDataError as exc:
            raise ConflictException(STALE_WRITE_MESSAGE) from exc

        failed = sum(1 for r in results if not r.ok)
        logger.info(
            "Task %s deleted by user %s (%d artifact(s), %d failed)",
            task_id,
            current_user.id,
            len(results),
            failed,
        )
        return results

    async def upload_attachments(
        self,
        db: AsyncSession,
        *,
        task: Task,
        uploads: Sequence[UploadFile],
        store: AttachmentStore,
    ) -> Task:
        if not uploads:
            raise ValidationException("No files uploaded", fields=["attachments"])
        try:
            await store.add_to_task(db, task=task, uploads=uploads)
        except StaleDataError as exc:
            raise ConflictException(STALE_WRITE_MESSAGE) from exc
        return await self._reload(db, task.id)

    async def delete_attachment(
        self,
        db: AsyncSession,
        *,
        task: Task,
        attachment_id: uuid.UUID,
        store: AttachmentStore,
    ) -> DeletionResult:
        try:
            return await store.remove_from_task(db, task=task, attachment_id=attachment_id)
        except StaleDataError as exc:
            raise ConflictException(STALE_WRITE_MESSAGE) from exc

    # ── Private helpers ───────────────────────────────────────────────────────

    async def _ensure_assignee(self, db: AsyncSession, user_id: uuid.UUID | None) -> None:
        if user_id is None:
            raise ValidationException.for_fields(["assignedTo"])
        assignee = await crud_user.get(db, user_id)
        if assignee is None or not assignee.is_active:
            raise ValidationException(
                "assignedTo must reference an existing active user",
                fields=["assignedTo"],
            )

    async def _reload(self, db: AsyncSession, task_id: uuid.UUID) -> Task:
        task = await crud_task.get_with_relations(db, task_id)
        if task is None:
            raise NotFoundException("Task", str(task_id))
        return task


task_service = TaskService()
