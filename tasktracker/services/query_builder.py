"""
Task list query construction.

Turns a TaskFilter plus the caller into a composed predicate, a deterministic
sort order and a skip/limit window. Explicit filters are ANDed together and
then ANDed with the visibility scope, so a non-admin can only ever narrow the
set of tasks they created or are assigned to.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import ColumnElement, and_, or_, true
from sqlalchemy.orm import InstrumentedAttribute
from sqlalchemy.sql.elements import UnaryExpression

from tasktracker.core.permissions import Identity
from tasktracker.models.task import Task
from tasktracker.schemas.task import TaskFilter

logger = logging.getLogger(__name__)

SORTABLE_FIELDS: dict[str, InstrumentedAttribute] = {
    "createdAt": Task.created_at,
    "created_at": Task.created_at,
    "updatedAt": Task.updated_at,
    "updated_at": Task.updated_at,
    "dueDate": Task.due_date,
    "due_date": Task.due_date,
    "title": Task.title,
    "status": Task.status,
    "priority": Task.priority,
}

DEFAULT_SORT: tuple[UnaryExpression, ...] = (Task.created_at.desc(), Task.id.desc())


@dataclass(frozen=True)
class TaskQuery:
    predicate: ColumnElement[bool]
    order_by: tuple[UnaryExpression, ...]
    skip: int
    limit: int
    page: int


def parse_sort(sort_by: str | None) -> tuple[UnaryExpression, ...]:
    """
    Parse ``field:dir`` into ORDER BY clauses.
    Unknown fields fall back to the default order; ``desc`` is the only
    descending direction, anything else sorts ascending. Task id breaks ties.
    """
    if not sort_by:
        return DEFAULT_SORT

    field, _, direction = sort_by.partition(":")
    column = SORTABLE_FIELDS.get(field.strip())
    if column is None:
        logger.debug("Ignoring unknown sort field %r", field)
        return DEFAULT_SORT

    if direction.strip().lower() == "desc":
        return (column.desc(), Task.id.desc())
    return (column.asc(), Task.id.asc())


def filter_clauses(filters: TaskFilter) -> list[ColumnElement[bool]]:
    """One clause per supplied filter dimension."""
    clauses: list[ColumnElement[bool]] = []
    if filters.status is not None:
        clauses.append(Task.status == filters.status)
    if filters.priority is not None:
        clauses.append(Task.priority == filters.priority)
    if filters.assigned_to_id is not None:
        clauses.append(Task.assigned_to_id == filters.assigned_to_id)
    if filters.start_date is not None:
        clauses.append(Task.due_date >= filters.start_date)
    if filters.end_date is not None:
        clauses.append(Task.due_date <= filters.end_date)
    return clauses


def visibility_scope(identity: Identity) -> ColumnElement[bool] | None:
    """Admins see everything; everyone else sees what they created or were given."""
    if identity.is_admin:
        return None
    return or_(
        Task.created_by_id == identity.id,
        Task.assigned_to_id == identity.id,
    )


def build_task_query(filters: TaskFilter, identity: Identity) -> TaskQuery:
    clauses = filter_clauses(filters)
    scope = visibility_scope(identity)
    if scope is not None:
        clauses.append(scope)

    predicate = and_(*clauses) if clauses else true()
    return TaskQuery(
        predicate=predicate,
        order_by=parse_sort(filters.sort_by),
        skip=filters.skip,
        limit=filters.limit,
        page=filters.page,
    )
