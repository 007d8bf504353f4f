"""
Test configuration and shared fixtures.
Each test gets a fresh in-memory SQLite database and its own upload directory.
"""
from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

from collections.abc import AsyncGenerator, Awaitable, Callable, Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from tasktracker.api.v1.auth import limiter
from tasktracker.core.config import settings
from tasktracker.core.dependencies import get_attachment_store
from tasktracker.core.security import create_access_token, hash_password
from tasktracker.db.base import Base
from tasktracker.db.session import get_db
from tasktracker.main import app
from tasktracker.models.task import Task
from tasktracker.models.user import User
from tasktracker.services.attachment_store import AttachmentStore

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PASSWORD = "TestPass1"

SessionFactory = async_sessionmaker[AsyncSession]


# ── Database ──────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """One in-memory database per test; StaticPool keeps it on a single connection."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# ── Attachments ───────────────────────────────────────────────────────────────

@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture
def store(upload_dir: Path) -> AttachmentStore:
    return AttachmentStore.from_settings(settings, root=upload_dir)


@pytest.fixture
def stored_files(upload_dir: Path) -> Callable[[], list[Path]]:
    """Artifacts currently on disk."""

    def _stored_files() -> list[Path]:
        if not upload_dir.exists():
            return []
        return sorted(p for p in upload_dir.iterdir() if p.is_file())

    return _stored_files


# ── HTTP client ───────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def disable_rate_limit() -> Iterator[None]:
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest_asyncio.fixture
async def client(
    session_factory: SessionFactory, store: AttachmentStore
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the test database and upload dir."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_attachment_store] = lambda: store

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Users ─────────────────────────────────────────────────────────────────────

UserFactory = Callable[..., Awaitable[User]]


@pytest.fixture
def make_user(session_factory: SessionFactory) -> UserFactory:
    async def _make_user(
        email: str,
        *,
        role: str = "user",
        first_name: str = "Test",
        last_name: str = "User",
        is_active: bool = True,
    ) -> User:
        async with session_factory() as session:
            user = User(
                email=email,
                first_name=first_name,
                last_name=last_name,
                hashed_password=hash_password(TEST_PASSWORD),
                role=role,
                is_active=is_active,
            )
            session.add(user)
            await session.commit()
            return user

    return _make_user


def headers_for(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user.id), user.role)}"}


@pytest_asyncio.fixture
async def user(make_user: UserFactory) -> User:
    return await make_user("owner@example.com", first_name="Olive", last_name="Owner")


@pytest_asyncio.fixture
async def other_user(make_user: UserFactory) -> User:
    return await make_user("other@example.com", first_name="Oscar", last_name="Other")


@pytest_asyncio.fixture
async def admin(make_user: UserFactory) -> User:
    return await make_user("admin@example.com", role="admin", first_name="Ada", last_name="Admin")


@pytest.fixture
def auth_headers(user: User) -> dict[str, str]:
    return headers_for(user)


@pytest.fixture
def other_headers(other_user: User) -> dict[str, str]:
    return headers_for(other_user)


@pytest.fixture
def admin_headers(admin: User) -> dict[str, str]:
    return headers_for(admin)


# ── Tasks ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def task_payload() -> Callable[..., dict[str, Any]]:
    """Build a complete create body; keyword overrides use wire (camelCase) names."""

    def _task_payload(assignee: User | str, **overrides: Any) -> dict[str, Any]:
        assigned_to = assignee if isinstance(assignee, str) else str(assignee.id)
        payload: dict[str, Any] = {
            "title": "Write quarterly report",
            "description": "Collect figures and draft the summary",
            "status": "todo",
            "priority": "medium",
            "dueDate": (datetime.now(timezone.utc) + timedelta(days=7)).isoformat(),
            "assignedTo": assigned_to,
        }
        payload.update(overrides)
        return payload

    return _task_payload


TaskSeeder = Callable[..., Awaitable[Task]]


@pytest.fixture
def seed_task(session_factory: SessionFactory) -> TaskSeeder:
    """Insert a task directly, bypassing the API."""

    async def _seed_task(creator: User, **fields: Any) -> Task:
        values: dict[str, Any] = {
            "title": "Seeded task",
            "description": "Seeded description",
            "status": "todo",
            "priority": "medium",
            "due_date": datetime.now(timezone.utc) + timedelta(days=3),
            "assigned_to_id": creator.id,
        }
        values.update(fields)
        async with session_factory() as session:
            task = Task(created_by_id=creator.id, **values)
            session.add(task)
            await session.commit()
            return task

    return _seed_task
