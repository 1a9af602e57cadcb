"""Unit tests for the schema client and the transaction helper."""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from mapping_service.core.database import DatabaseClient, unit_of_work
from mapping_service.core.exceptions import StorageError
from mapping_service.services.kinds import CSRAS


@pytest.fixture
async def empty_engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    yield engine
    await engine.dispose()


class TestDatabaseClient:
    """Tests for DatabaseClient."""

    async def test_health_reports_missing_tables(self, empty_engine):
        client = DatabaseClient(empty_engine)

        report = await client.health_check()

        assert report["status"] == "degraded"
        assert "csra_mappings" in report["missing_tables"]
        assert report["dialect"] == "sqlite"

    async def test_auto_migrate_creates_every_table(self, empty_engine):
        client = DatabaseClient(empty_engine)

        await client.auto_migrate()

        assert await client.missing_tables() == []
        assert (await client.health_check())["status"] == "healthy"

    async def test_drop_tables(self, db_engine):
        client = DatabaseClient(db_engine)

        await client.drop_tables()

        assert "group_migrations" in await client.missing_tables()


class TestUnitOfWork:
    """Tests for unit_of_work."""

    async def test_commits_on_success(self, db_session, session_factory, csra):
        async with unit_of_work(db_session):
            db_session.add(CSRAS.to_model(csra()))

        async with session_factory() as other:
            assert await other.get(CSRAS.model, "edcd118c-41ba-42ea-b5c4-404b453ad58b") is not None

    async def test_rolls_back_on_error(self, db_session, session_factory, csra):
        with pytest.raises(RuntimeError):
            async with unit_of_work(db_session):
                db_session.add(CSRAS.to_model(csra()))
                await db_session.flush()
                raise RuntimeError("boom")

        async with session_factory() as other:
            assert await other.get(CSRAS.model, "edcd118c-41ba-42ea-b5c4-404b453ad58b") is None

    async def test_wraps_store_failures(self, empty_engine, csra):
        async with AsyncSession(empty_engine) as session:
            with pytest.raises(StorageError) as exc_info:
                async with unit_of_work(session):
                    session.add(CSRAS.to_model(csra()))
                    await session.flush()

        assert isinstance(exc_info.value.original_error, OperationalError)
