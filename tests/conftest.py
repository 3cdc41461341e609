"""Shared pytest fixtures for the authorization engine tests."""

import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Dict, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.database.engine import get_db, init_db
from app.features.permission_matrix.service import MatrixEditor
from app.features.permissions.catalog import seed_catalog
from app.features.roles.models import Role
from app.features.roles.service import RoleService
from app.features.users.auth import create_access_token
from app.features.users.models import User
from app.main import app


@pytest_asyncio.fixture()
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    """File-backed SQLite database with tables and the seeded catalog."""

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'authz.sqlite'}",
        poolclass=NullPool,
    )
    await init_db(bind=engine)

    async with _sessionmaker(engine)() as session:
        await seed_catalog(session)
        await session.commit()

    yield engine
    await engine.dispose()


def _sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return _sessionmaker(engine)


@pytest_asyncio.fixture()
async def db(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def client(session_factory) -> AsyncIterator[AsyncClient]:
    """HTTPX async client bound to the app, using the test database."""

    async def override_get_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_role(db: AsyncSession) -> Callable[..., Awaitable[Role]]:
    """Create a committed role holding the given {module: csv} matrix."""

    async def _make_role(name: str, permissions: Optional[Dict[str, str]] = None) -> Role:
        role = await RoleService(db).create(name, acting_user_id=None)
        await MatrixEditor(db).replace_role_permissions(role.id, permissions or {}, acting_user_id=None)
        return role

    return _make_role


@pytest.fixture()
def make_user(db: AsyncSession) -> Callable[..., Awaitable[User]]:
    async def _make_user(email: str, role: Optional[Role] = None) -> User:
        user = User(email=email, name=email.split("@")[0], role_id=role.id if role else None)
        db.add(user)
        await db.commit()
        return user

    return _make_user


@pytest.fixture()
def auth_headers() -> Callable[[User], Dict[str, str]]:
    """Bearer header carrying the user's identity claims."""

    def _auth_headers(user: User) -> Dict[str, str]:
        token = create_access_token(user.id, user.email, user.role_id)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest_asyncio.fixture()
async def admin(make_role, make_user) -> User:
    """A user whose role holds every action on the management modules."""

    role = await make_role(
        "Administrator",
        {
            "settings": "C,V,E,D",
            "user_level": "C,V,E,D",
            "user": "C,V,E,D",
        },
    )
    return await make_user("admin@example.com", role)
