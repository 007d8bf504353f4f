"""
Task CRUD operations.
Extends CRUDBase with eager-loaded fetches and paged listing.
"""
from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tasktracker.crud.base import CRUDBase
from tasktracker.models.task import Task
from tasktracker.schemas.task import TaskCreate, TaskUpdate
from tasktracker.services.query_builder import TaskQuery


class CRUDTask(CRUDBase[Task, TaskUpdate]):

    immutable_fields = frozenset({"id", "created_at", "created_by_id", "version"})

    async def get_with_relations(
        self,
        db: AsyncSession,
        task_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Task | None:
        """
        Fetch a task with creator, assignee and attachments loaded.
        Always re-reads the row so the identity map never serves stale state.
        """
        query = (
            select(Task)
            .where(Task.id == task_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update(of=Task)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def create_task(
        self,
        db: AsyncSession,
        *,
        obj_in: TaskCreate,
        created_by_id: uuid.UUID,
    ) -> Task:
        task = Task(
            title=obj_in.title,
            description=obj_in.description,
            status=obj_in.status,
            priority=obj_in.priority,
            due_date=obj_in.due_date,
            assigned_to_id=obj_in.assigned_to_id,
            created_by_id=created_by_id,
        )
        db.add(task)
        return task

    async def list_page(
        self, db: AsyncSession, *, query: TaskQuery
    ) -> tuple[list[Task], int]:
        """Return (tasks on the requested page, total matching count)."""
        count_result = await db.execute(
            select(func.count()).select_from(Task).where(query.predicate)
        )
        total = count_result.scalar_one()

        result = await db.execute(
            select(Task)
            .where(query.predicate)
            .order_by(*query.order_by)
            .offset(query.skip)
            .limit(query.limit)
        )
        return list(result.scalars().all()), total

    async def remove_task(self, db: AsyncSession, *, task: Task) -> None:
        await db.delete(task)
        await db.flush()


crud_task = CRUDTask(Task)
