"""
Task routes.
CRUD with filtering, sorting and pagination. Create and update accept either a
JSON body or multipart/form-data carrying files under the ``attachments`` field.
"""
from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Annotated, TypeVar
import uuid

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, ValidationError
from starlette.datastructures import UploadFile

from tasktracker.core.config import settings
from tasktracker.core.dependencies import Attachments, CurrentUser, DBSession, OwnedTask
from tasktracker.core.exceptions import ValidationException
from tasktracker.schemas.task import (
    MessageResponse,
    TaskCreate,
    TaskFilter,
    TaskPage,
    TaskPriority,
    TaskRead,
    TaskStatus,
    TaskUpdate,
    as_utc,
)
from tasktracker.services.task_service import task_service

router = APIRouter(prefix="/tasks", tags=["Tasks"])

ModelT = TypeVar("ModelT", bound=BaseModel)

ATTACHMENTS_FIELD = "attachments"
TRUTHY = {"1", "true", "yes", "on"}


# ── Request body handling ─────────────────────────────────────────────────────

@dataclass
class TaskSubmission:
    data: dict[str, Any]
    files: list[UploadFile] = field(default_factory=list)

    def pop_flag(self, name: str) -> bool:
        value = self.data.pop(name, False)
        if isinstance(value, str):
            return value.strip().lower() in TRUTHY
        return bool(value)


def accept_file_part(key: str, upload: UploadFile) -> bool:
    """
    True for a real file under the attachments field. Empty parts (browsers
    send one when no file was chosen) are skipped; files under any other
    field are rejected.
    """
    if not upload.filename:
        return False
    if key != ATTACHMENTS_FIELD:
        raise ValidationException(
            f"Unexpected file field '{key}'. Files must be sent as '{ATTACHMENTS_FIELD}'",
            fields=[key],
        )
    return True


@asynccontextmanager
async def _read_submission(request: Request) -> AsyncIterator[TaskSubmission]:
    """
    Yield the submitted fields and files. Multipart uploads stay open only for
    the duration of the block and are closed on exit, success or not.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        async with request.form() as form:
            submission = TaskSubmission(data={})
            for key, value in form.multi_items():
                if isinstance(value, UploadFile):
                    if accept_file_part(key, value):
                        submission.files.append(value)
                else:
                    submission.data[key] = value
            yield submission
        return

    raw = await request.body()
    if not raw.strip():
        yield TaskSubmission(data={})
        return
    try:
        body = await request.json()
    except ValueError:
        raise ValidationException("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise ValidationException("Request body must be a JSON object")
    yield TaskSubmission(data=body)


def _parse(model: type[ModelT], data: dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        fields = [str(err["loc"][0]) for err in exc.errors() if err["loc"]]
        raise ValidationException.for_fields(fields or ["body"]) from exc


# ── Query parameters ──────────────────────────────────────────────────────────

def _parse_date_bound(value: str | None, name: str, *, end: bool) -> datetime | None:
    """
    ISO-8601 timestamp, or a bare date covering the whole day
    (start of day for startDate, end of day for endDate).
    """
    if value is None or not value.strip():
        return None
    value = value.strip()
    try:
        day = date.fromisoformat(value)
    except ValueError:
        pass
    else:
        return datetime.combine(day, time.max if end else time.min, tzinfo=timezone.utc)
    try:
        return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        raise ValidationException(f"Invalid date for {name}: '{value}'", fields=[name])


def _task_filter_params(
    status: TaskStatus | None = Query(default=None),
    priority: TaskPriority | None = Query(default=None),
    assigned_to: uuid.UUID | None = Query(default=None, alias="assignedTo"),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    sort_by: str | None = Query(default=None, alias="sortBy", max_length=100),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> TaskFilter:
    return TaskFilter(
        status=status,
        priority=priority,
        assigned_to_id=assigned_to,
        start_date=_parse_date_bound(start_date, "startDate", end=False),
        end_date=_parse_date_bound(end_date, "endDate", end=True),
        sort_by=sort_by,
        page=page,
        limit=limit,
    )


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get(
    "/",
    response_model=TaskPage,
    summary="List tasks with filters, sorting and pagination",
)
async def list_tasks(
    current_user: CurrentUser,
    db: DBSession,
    filters: Annotated[TaskFilter, Depends(_task_filter_params)],
) -> TaskPage:
    tasks, total = await task_service.list_tasks(
        db, filters=filters, current_user=current_user
    )
    return TaskPage(
        tasks=[TaskRead.model_validate(t) for t in tasks],
        page=filters.page,
        limit=filters.limit,
        total=total,
    )


@router.post(
    "/",
    response_model=TaskRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a task, optionally with attachments",
)
async def create_task(
    request: Request,
    current_user: CurrentUser,
    db: DBSession,
    store: Attachments,
) -> TaskRead:
    async with _read_submission(request) as submission:
        task_in = _parse(TaskCreate, submission.data)
        task = await task_service.create_task(
            db,
            task_in=task_in,
            uploads=submission.files,
            current_user=current_user,
            store=store,
        )
    return TaskRead.model_validate(task)


@router.get(
    "/{task_id}",
    response_model=TaskRead,
    summary="Get a task by ID",
)
async def get_task(
    task_id: uuid.UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> TaskRead:
    task = await task_service.get_task(db, task_id=task_id)
    return TaskRead.model_validate(task)


@router.put(
    "/{task_id}",
    response_model=TaskRead,
    summary="Partially update a task (creator, assignee or admin)",
)
async def update_task(
    request: Request,
    task: OwnedTask,
    current_user: CurrentUser,
    db: DBSession,
    store: Attachments,
) -> TaskRead:
    async with _read_submission(request) as submission:
        remove_attachments = submission.pop_flag("removeAttachments")
        task_in = _parse(TaskUpdate, submission.data)
        updated = await task_service.update_task(
            db,
            task=task,
            task_in=task_in,
            uploads=submission.files,
            remove_attachments=remove_attachments,
            current_user=current_user,
            store=store,
        )
    return TaskRead.model_validate(updated)


@router.delete(
    "/{task_id}",
    response_model=MessageResponse,
    summary="Delete a task and its attachments (creator, assignee or admin)",
)
async def delete_task(
    task: OwnedTask,
    current_user: CurrentUser,
    db: DBSession,
    store: Attachments,
) -> MessageResponse:
    await task_service.delete_task(db, task=task, current_user=current_user, store=store)
    return MessageResponse(message="Task removed")
