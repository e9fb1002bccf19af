"""Root conftest: shared test configuration and database fixtures.

Invariants:
    - Every test gets a fresh in-memory SQLite database (test_engine)
    - Concurrency tests get a file-backed SQLite database (file_engine) so that
      each concurrent task really holds its own connection
    - get_db dependency overridden to use the test session factory
    - Background vote notifications are drained before an engine is torn down

Design Decisions:
    - SQLite in-memory: fast, no external dependency; the partial unique indexes
      are declared for SQLite too, so the invariants they back are exercised
    - Row-level seeding lives in tests/seeding.py, not in fixtures, so each test
      builds exactly the circle shape it needs
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///test.db")
os.environ.setdefault("LOG_FORMAT", "text")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession, async_sessionmaker, create_async_engine,
)

import circle_governance.infrastructure.database as db_module  # noqa: E402
from circle_governance.db.base import Base  # noqa: E402
from circle_governance.infrastructure.database import (  # noqa: E402
    DatabaseSessionManager, get_db,
)
from circle_governance.infrastructure.keyed_locks import KeyedLockRegistry  # noqa: E402
from circle_governance.infrastructure.notifier import drain_notifications  # noqa: E402


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await drain_notifications()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def file_engine(tmp_path):
    """File-backed engine: one real connection per session, for race tests."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'circles.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await drain_notifications()
    await engine.dispose()


@pytest.fixture
async def file_session_factory(file_engine):
    return async_sessionmaker(
        file_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
def locks():
    """Fresh lock registry per test: no cross-test lock state."""
    return KeyedLockRegistry()


@pytest.fixture
async def client(test_engine, test_session_factory):
    """FastAPI test client with DB dependency overridden."""
    from circle_governance.main import app

    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager


