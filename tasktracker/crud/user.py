"""
User CRUD operations.
Extends CRUDBase with user-specific queries.
"""
from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tasktracker.crud.base import CRUDBase
from tasktracker.models.user import User
from tasktracker.schemas.user import UserUpdate


class CRUDUser(CRUDBase[User, UserUpdate]):

    immutable_fields = frozenset({"id", "created_at", "hashed_password"})

    async def get_by_email(self, db: AsyncSession, email: str) -> User | None:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def create_user(
        self,
        db: AsyncSession,
        *,
        email: str,
        hashed_password: str,
        first_name: str,
        last_name: str,
        role: str = "user",
    ) -> User:
        user = User(
            email=email.lower(),
            hashed_password=hashed_password,
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
        db.add(user)
        await db.flush()
        return user

    async def deactivate(self, db: AsyncSession, *, user: User) -> User:
        user.is_active = False
        db.add(user)
        await db.flush()
        return user

    async def list_users(
        self,
        db: AsyncSession,
        *,
        skip: int = 0,
        limit: int = 100,
        include_inactive: bool = False,
    ) -> tuple[list[User], int]:
        query = select(User)
        count_query = select(func.count()).select_from(User)

        if not include_inactive:
            query = query.where(User.is_active.is_(True))
            count_query = count_query.where(User.is_active.is_(True))

        total_result = await db.execute(count_query)
        total = total_result.scalar_one()

        result = await db.execute(
            query.order_by(User.created_at.desc(), User.id).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total


crud_user = CRUDUser(User)
