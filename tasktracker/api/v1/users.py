"""
User management routes.
Admins list, create, read and deactivate users; PUT /users/{id} is open to the user
themself (profile fields only) and to admins (role and active flag too).
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from tasktracker.core.dependencies import AdminUser, CurrentUser, DBSession, OwnedUser
from tasktracker.core.exceptions import ForbiddenException, NotFoundException
from tasktracker.crud.user import crud_user
from tasktracker.schemas.pagination import Page
from tasktracker.schemas.task import MessageResponse
from tasktracker.schemas.user import AdminUserCreate, UserRead, UserUpdate
from tasktracker.services.auth_service import auth_service

router = APIRouter(prefix="/users", tags=["Users"])


@router.get(
    "/",
    response_model=Page[UserRead],
    summary="List users (admin only)",
)
async def list_users(
    _admin: AdminUser,
    db: DBSession,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    include_inactive: bool = Query(default=False, alias="includeInactive"),
) -> Page[UserRead]:
    users, total = await crud_user.list_users(
        db, skip=(page - 1) * limit, limit=limit, include_inactive=include_inactive
    )
    return Page(
        items=[UserRead.model_validate(u) for u in users],
        total=total,
        page=page,
        limit=limit,
    )


@router.post(
    "/",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user with a chosen role (admin only)",
)
async def create_user(
    user_in: AdminUserCreate,
    _admin: AdminUser,
    db: DBSession,
) -> UserRead:
    user = await auth_service.register_user(db, user_in=user_in, role=user_in.role)
    return UserRead.model_validate(user)


@router.get(
    "/{user_id}",
    response_model=UserRead,
    summary="Get user by ID (admin only)",
)
async def get_user(
    user_id: uuid.UUID,
    _admin: AdminUser,
    db: DBSession,
) -> UserRead:
    user = await crud_user.get(db, user_id)
    if user is None:
        raise NotFoundException("User", str(user_id))
    return UserRead.model_validate(user)


@router.put(
    "/{user_id}",
    response_model=UserRead,
    summary="Update a user profile (self or admin)",
)
async def update_user(
    user_in: UserUpdate,
    user: OwnedUser,
    current_user: CurrentUser,
    db: DBSession,
) -> UserRead:
    changes = user_in.model_dump(exclude_unset=True, exclude_none=True)

    if not current_user.is_admin and ({"role", "is_active"} & changes.keys()):
        raise ForbiddenException("Only admins can change role or account status")

    if "email" in changes:
        changes["email"] = changes["email"].lower()
        await auth_service.ensure_email_available(db, changes["email"], current=user)

    updated = await crud_user.update(db, db_obj=user, obj_in=changes)
    return UserRead.model_validate(updated)


@router.delete(
    "/{user_id}",
    response_model=MessageResponse,
    summary="Deactivate a user (admin only)",
)
async def deactivate_user(
    user_id: uuid.UUID,
    _admin: AdminUser,
    db: DBSession,
) -> MessageResponse:
    user = await crud_user.get(db, user_id)
    if user is None:
        raise NotFoundException("User", str(user_id))
    await crud_user.deactivate(db, user=user)
    return MessageResponse(message="User deactivated")
