"""
Task Pydantic schemas.
Includes create/update/read variants, the list filter, and the list envelope.
"""
from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, computed_field, field_validator

from tasktracker.core.config import settings
from tasktracker.schemas.attachment import AttachmentRead
from tasktracker.schemas.base import CamelModel
from tasktracker.schemas.user import UserSummary

TaskStatus = Literal["todo", "in_progress", "completed"]
TaskPriority = Literal["low", "medium", "high"]


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise to an aware UTC datetime; naive input is taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Create ────────────────────────────────────────────────────────────────────

class TaskCreate(CamelModel):
    title: str = Field(min_length=1, max_length=500)
    description: str = Field(min_length=1, max_length=10000)
    status: TaskStatus
    priority: TaskPriority
    due_date: datetime
    assigned_to_id: uuid.UUID = Field(alias="assignedTo")

    @field_validator("title", "description")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("due_date")
    @classmethod
    def normalise_due_date(cls, v: datetime) -> datetime:
        return as_utc(v)  # type: ignore[return-value]


# ── Update ────────────────────────────────────────────────────────────────────

class TaskUpdate(CamelModel):
    """
    Partial update. Only fields the client actually sent are applied;
    unknown keys (including ``createdBy``) are ignored.
    """

    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = Field(default=None, min_length=1, max_length=10000)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    assigned_to_id: uuid.UUID | None = Field(default=None, alias="assignedTo")
    # Optional optimistic-concurrency token: the version the client last read
    version: int | None = Field(default=None, ge=1)

    @field_validator("title", "description")
    @classmethod
    def not_blank(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("must not be blank")
        return v.strip() if v is not None else v

    @field_validator("due_date")
    @classmethod
    def normalise_due_date(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True, exclude={"version"})

    def cleared_fields(self) -> list[str]:
        """Wire names of required fields the client explicitly set to null."""
        return [
            type(self).model_fields[name].alias or name
            for name in sorted(self.model_fields_set - {"version"})
            if getattr(self, name) is None
        ]


# ── Read ──────────────────────────────────────────────────────────────────────

class TaskRead(CamelModel):
    id: uuid.UUID
    title: str
    description: str | None
    status: str
    priority: str
    due_date: datetime | None
    created_by: UserSummary
    assigned_to: UserSummary | None = None
    attachments: list[AttachmentRead] = Field(default_factory=list)
    version: int
    created_at: datetime
    updated_at: datetime


# ── Filter ────────────────────────────────────────────────────────────────────

class TaskFilter(BaseModel):
    """Query parameters for the task list endpoint."""

    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assigned_to_id: uuid.UUID | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    sort_by: str | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


# ── Envelope ──────────────────────────────────────────────────────────────────

class TaskPage(BaseModel):
    """One page of tasks plus the metadata needed to page through the rest."""

    tasks: list[TaskRead]
    page: int
    limit: int
    total: int

    @computed_field  # type: ignore[misc]
    @property
    def pages(self) -> int:
        if self.limit == 0:
            return 0
        return math.ceil(self.total / self.limit)


class MessageResponse(BaseModel):
    message: str
