"""
FastAPI dependency injection functions.

Every guarded route runs the same ordered chain, expressed as nested
dependencies rather than middleware mutating the request:

    get_current_user  -> 401 when the bearer token is missing or invalid
    get_owned_task    -> 404 when the task does not exist,
                         403 when the caller is neither admin nor owner
    (route handler)   -> upload validation and the mutation itself
"""
from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from tasktracker.core.exceptions import (
    ForbiddenException,
    InvalidTokenException,
    NotFoundException,
    UnauthorizedException,
)
from tasktracker.core.permissions import Identity, ensure_allowed
from tasktracker.core.security import decode_access_token
from tasktracker.crud.task import crud_task
from tasktracker.crud.user import crud_user
from tasktracker.db.session import get_db
from tasktracker.models.task import Task
from tasktracker.models.user import User
from tasktracker.services.attachment_store import AttachmentStore, attachment_store

__all__ = [
    "get_db",
    "get_current_user",
    "require_admin",
    "get_owned_task",
    "get_owned_user",
    "get_attachment_store",
    "DBSession",
    "CurrentUser",
    "AdminUser",
    "OwnedTask",
    "OwnedUser",
    "Attachments",
]

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_db)],
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ] = None,
) -> User:
    """
    Resolve the bearer token in the Authorization header to an active user.
    """
    if credentials is None:
        raise UnauthorizedException("Not authorized to access this route")

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError:
        raise InvalidTokenException("Invalid or expired access token")

    user_id_str = payload.get("sub")
    if not user_id_str:
        raise InvalidTokenException("Malformed token: missing subject")

    try:
        user_id = uuid.UUID(user_id_str)
    except ValueError:
        raise InvalidTokenException("Malformed token: invalid subject format")

    user = await crud_user.get(db, user_id)
    if user is None:
        raise UnauthorizedException("User not found")
    if not user.is_active:
        raise UnauthorizedException("User account is deactivated")

    return user


async def require_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Dependency that requires the current user to have the 'admin' role."""
    if not current_user.is_admin:
        raise ForbiddenException(
            f"User role {current_user.role} is not authorized to access this route"
        )
    return current_user


async def get_owned_task(
    task_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Task:
    """
    Load the task named in the path and check the caller may mutate it.
    The row stays locked for the rest of the request where the backend supports it.
    """
    task = await crud_task.get_with_relations(db, task_id, for_update=True)
    if task is None:
        raise NotFoundException("Task", str(task_id))
    ensure_allowed(Identity.of(current_user), task)
    return task


async def get_owned_user(
    user_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Load the user named in the path; only that user or an admin passes."""
    user = await crud_user.get(db, user_id)
    if user is None:
        raise NotFoundException("User", str(user_id))
    ensure_allowed(Identity.of(current_user), user)
    return user


def get_attachment_store() -> AttachmentStore:
    """Overridden in tests to point at a temporary upload directory."""
    return attachment_store


# Convenience type aliases for route signatures
DBSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(require_admin)]
OwnedTask = Annotated[Task, Depends(get_owned_task)]
OwnedUser = Annotated[User, Depends(get_owned_user)]
Attachments = Annotated[AttachmentStore, Depends(get_attachment_store)]
