"""
Authentication service.
Handles registration, login and self-service account changes. Routes only
call these methods.
"""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tasktracker.core.exceptions import ConflictException, UnauthorizedException
from tasktracker.core.security import create_access_token, hash_password, verify_password
from tasktracker.crud.user import crud_user
from tasktracker.models.user import User
from tasktracker.schemas.user import AccessToken, ProfileUpdate, UserCreate, UserRead

logger = logging.getLogger(__name__)


class AuthService:

    async def register_user(
        self, db: AsyncSession, *, user_in: UserCreate, role: str = "user"
    ) -> User:
        """
        Create an account. Self-registration always gets the ``user`` role;
        admins creating accounts may pass another.
        Email addresses are unique case-insensitively.
        """
        await self.ensure_email_available(db, user_in.email)

        user = await crud_user.create_user(
            db,
            email=user_in.email,
            hashed_password=hash_password(user_in.password),
            first_name=user_in.first_name,
            last_name=user_in.last_name,
            role=role,
        )
        logger.info("Registered user %s with role %s", user.id, role)
        return user

    async def authenticate_user(
        self, db: AsyncSession, *, email: str, password: str
    ) -> AccessToken:
        """Verify credentials and issue a bearer token."""
        user = await crud_user.get_by_email(db, email)
        if (
            user is None
            or not user.is_active
            or not verify_password(password, user.hashed_password)
        ):
            raise UnauthorizedException("Invalid email or password")

        return AccessToken(
            access_token=create_access_token(str(user.id), user.role),
            user=UserRead.model_validate(user),
        )

    async def update_profile(
        self, db: AsyncSession, *, user: User, profile_in: ProfileUpdate
    ) -> User:
        changes = profile_in.model_dump(exclude_unset=True, exclude_none=True)
        password = changes.pop("password", None)

        if "email" in changes:
            changes["email"] = changes["email"].lower()
            await self.ensure_email_available(db, changes["email"], current=user)

        user = await crud_user.update(db, db_obj=user, obj_in=changes)
        if password is not None:
            # hashed_password is immutable for generic updates
            user.hashed_password = hash_password(password)
            db.add(user)
            await db.flush()

        logger.info(
            "User %s updated their profile: fields=%s",
            user.id,
            sorted(changes) + (["password"] if password is not None else []),
        )
        return user

    async def deactivate_self(self, db: AsyncSession, *, user: User) -> User:
        user = await crud_user.deactivate(db, user=user)
        logger.info("User %s deactivated their account", user.id)
        return user

    async def ensure_email_available(
        self, db: AsyncSession, email: str, *, current: User | None = None
    ) -> None:
        """409 unless ``email`` is free or already belongs to ``current``."""
        existing = await crud_user.get_by_email(db, email)
        if existing is not None and (current is None or existing.id != current.id):
            raise ConflictException("A user with this email already exists")


auth_service = AuthService()
