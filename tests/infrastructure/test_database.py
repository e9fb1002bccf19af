"""DatabaseSessionManager: failure mapping, rollback and health probe."""

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from circle_governance.core.errors import DatabaseError, NotFoundError
from circle_governance.db.base import Base
from circle_governance.infrastructure.database import (
    DatabaseSessionManager, classify_failure,
)
from circle_governance.models import Circle


@pytest.fixture
async def manager(tmp_path):
    mgr = DatabaseSessionManager(f"sqlite+aiosqlite:///{tmp_path / 'mgr.db'}")
    async with mgr.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield mgr
    await mgr.dispose()


def test_classify_failure_prefers_specific_types():
    integrity = IntegrityError("INSERT", {}, Exception("dup"))
    operational = OperationalError("SELECT", {}, Exception("locked"))
    assert classify_failure(integrity).operation == "commit"
    assert classify_failure(operational).operation == "execute"
    assert classify_failure(SQLAlchemyError("boom")).operation == "unknown"


async def test_sqlalchemy_error_becomes_database_error(manager):
    with pytest.raises(DatabaseError) as exc_info:
        async with manager.session():
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))
    assert exc_info.value.http_status == 503


async def test_domain_error_passes_through_and_rolls_back(manager):
    with pytest.raises(NotFoundError):
        async with manager.session() as db:
            db.add(Circle(name="Doomed", created_by=uuid4()))
            await db.flush()
            raise NotFoundError("circle", "x")

    async with manager.session() as db:
        rows = (await db.execute(select(Circle))).scalars().all()
    assert rows == []


async def test_health_check(manager):
    assert await manager.health_check() is True
