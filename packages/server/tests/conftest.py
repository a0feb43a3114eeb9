"""
Shared fixtures: an in-memory SQLite record store and an authenticated HTTP client.
"""

from __future__ import annotations

import os
import uuid

os.environ.setdefault("TASKFLOW_DATABASE_URL", "sqlite+aiosqlite://")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import app.models  # noqa: F401  (populate metadata)
from app.core.auth import create_jwt
from app.core.database import get_session
from app.main import app as fastapi_app
from app.services.store import TaskStore
from app.services.tasks import create_task
from taskflow_shared.schemas.tasks import TaskCreate


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def store(session) -> TaskStore:
    return TaskStore(session)


@pytest.fixture
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def other_owner_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def make_task(session, owner_id):
    """Create a task for ``owner_id`` (or another owner) through the service layer."""

    async def _make(title: str = "task", owner: uuid.UUID | None = None, **fields):
        return await create_task(session, TaskCreate(title=title, **fields), owner or owner_id)

    return _make


@pytest.fixture
async def client(session_factory):
    async def _override_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    fastapi_app.dependency_overrides[get_session] = _override_session
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(owner_id) -> dict[str, str]:
    token, _ = create_jwt(owner_id)
    return {"Authorization": f"Bearer {token}"}
