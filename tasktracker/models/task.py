"""
Task ORM model.
Central entity of the tracker. Carries status/priority enums, the creator and
assignee references used for ownership checks, and an ordered attachment list.
"""
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tasktracker.db.base import Base, utcnow

TASK_STATUSES = ("todo", "in_progress", "completed")
TASK_PRIORITIES = ("low", "medium", "high")


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        Enum(*TASK_STATUSES, name="task_status_enum"),
        nullable=False,
        default="todo",
        server_default="todo",
    )
    priority: Mapped[str] = mapped_column(
        Enum(*TASK_PRIORITIES, name="task_priority_enum"),
        nullable=False,
        default="medium",
        server_default="medium",
    )
    due_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_by_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    assigned_to_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    # ── Relationships ─────────────────────────────────────────────────────────
    created_by: Mapped["User"] = relationship(  # type: ignore[name-defined]  # noqa: F821
        "User",
        foreign_keys=[created_by_id],
        back_populates="created_tasks",
        lazy="selectin",
    )
    assigned_to: Mapped["User | None"] = relationship(  # type: ignore[name-defined]  # noqa: F821
        "User",
        foreign_keys=[assigned_to_id],
        back_populates="assigned_tasks",
        lazy="selectin",
    )
    attachments: Mapped[list["Attachment"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        "Attachment",
        back_populates="task",
        order_by="Attachment.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Every UPDATE checks and bumps the counter; a stale writer raises StaleDataError
    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_tasks_created_by_id", "created_by_id"),
        Index("ix_tasks_assigned_to_id", "assigned_to_id"),
        Index("ix_tasks_status", "status"),
        Index("ix_tasks_priority", "priority"),
        Index("ix_tasks_due_date", "due_date"),
        Index("ix_tasks_created_at", "created_at"),
        Index("ix_tasks_status_priority", "status", "priority"),
    )

    def is_owned_by(self, user_id: uuid.UUID) -> bool:
        """True when the user created the task or is its assignee."""
        return user_id in (self.created_by_id, self.assigned_to_id)

    def __repr__(self) -> str:
        return f"<Task id={self.id} title={self.title!r} status={self.status}>"
