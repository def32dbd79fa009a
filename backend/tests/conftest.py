"""Root conftest: shared test configuration and fixtures.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - Emails never leave the process: services get a list-backed sink
    - Environment is set before any sprintdesk import reads settings

Design Decisions:
    - SQLite in-memory via StaticPool so every session sees the same database
    - Factories (make_user, make_project, ...) return committed rows
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sprintdesk.db.base import Base
from sprintdesk.models import Folder, Project, Sprint, User, UserRole


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def sent_emails():
    """Emails handed to the sink, in dispatch order."""
    return []


@pytest.fixture
def email_sink(sent_emails):
    return sent_emails.append


# -- Factories -----------------------------------------------------------------

@pytest.fixture
def make_user(test_db):
    async def _make(display_name: str, email: str | None = None, role: str = UserRole.MEMBER.value):
        user = User(
            email=email or f"{display_name.lower().replace(' ', '.')}@example.com",
            display_name=display_name,
            role=role,
        )
        test_db.add(user)
        await test_db.commit()
        return user
    return _make


@pytest.fixture
def make_project(test_db):
    async def _make(key: str, creator: User, members: list[User] = (), name: str | None = None):
        project = Project(
            name=name or f"Project {key}",
            key=key,
            task_counter=0,
            created_by_id=creator.id,
        )
        project.members.extend(members)
        test_db.add(project)
        await test_db.commit()
        return project
    return _make


@pytest.fixture
def make_sprint(test_db):
    async def _make(project: Project, name: str, order: int = 0):
        sprint = Sprint(project_id=project.id, name=name, order=order)
        test_db.add(sprint)
        await test_db.commit()
        return sprint
    return _make


@pytest.fixture
def make_folder(test_db):
    async def _make(project: Project, name: str = "Specs"):
        folder = Folder(project_id=project.id, name=name, order=0)
        test_db.add(folder)
        await test_db.commit()
        return folder
    return _make


@pytest.fixture
async def admin(make_user):
    return await make_user("Ada Admin", email="ada@example.com", role=UserRole.ADMIN.value)


@pytest.fixture
async def alice(make_user):
    return await make_user("Alice Smith", email="alice@example.com")


@pytest.fixture
async def bob(make_user):
    return await make_user("Bob Jones", email="bob@example.com")


@pytest.fixture
async def project(make_project, admin, alice, bob):
    return await make_project("CORE", admin, members=[alice, bob])
