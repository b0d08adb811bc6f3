"""
Shared fixtures: a fresh in-memory database per test, a session for service
tests, and an HTTP client whose requests run against the same database.
"""
import itertools

import pytest
import pytest_asyncio
from fastapi import Depends
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database.base import Base
from app.core.database.engine import enable_sqlite_foreign_keys, get_db, import_models
from app.core.errors import Unauthenticated
from app.features.memberships import service as memberships
from app.features.organizations import service as organizations
from app.features.organizations.schemas import OrganizationCreate
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.main import app

import_models()

_counter = itertools.count()


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine.sync_engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db):
    async def _make(name: str = "User", email: str | None = None, is_admin: bool = False) -> User:
        n = next(_counter)
        user = User(
            appwrite_id=f"appwrite-{n}",
            email=email or f"user{n}@example.com",
            name=name,
            is_admin=is_admin,
        )
        db.add(user)
        await db.commit()
        return user

    return _make


@pytest.fixture
def make_org(db):
    async def _make(name: str = "Org", parent_id: str | None = None, **fields):
        organization = await organizations.create(
            db, OrganizationCreate(name=name, parent_id=parent_id, **fields), actor_id=None
        )
        await db.commit()
        return organization

    return _make


@pytest.fixture
def make_member(db):
    async def _make(organization_id: str, user_id: str, **fields):
        membership = await memberships.add_member(db, organization_id, user_id, **fields)
        await db.commit()
        return membership

    return _make


# ----------------------------------------------------------------------------
# HTTP client
# ----------------------------------------------------------------------------

class Session:
    """Who the test client is acting as."""

    def __init__(self):
        self.user_id: str | None = None

    def login(self, user: User) -> None:
        self.user_id = user.id

    def logout(self) -> None:
        self.user_id = None


@pytest.fixture
def session():
    return Session()


@pytest_asyncio.fixture
async def client(session_factory, session):
    async def override_get_db():
        async with session_factory() as db_session:
            try:
                yield db_session
                await db_session.commit()
            except Exception:
                await db_session.rollback()
                raise

    async def override_get_current_user(db_session: AsyncSession = Depends(get_db)) -> User:
        if session.user_id is None:
            raise Unauthenticated("Missing bearer token")
        return await db_session.get(User, session.user_id)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
