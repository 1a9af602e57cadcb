"""Database engine, session dependency and transaction helpers.

Every service operation runs inside `unit_of_work`, so the mapping stores it
touches commit or roll back together.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import List, Optional

from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from mapping_service.core.config import settings
from mapping_service.core.exceptions import ConfigurationError, StorageError
from mapping_service.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def build_engine(url: Optional[str] = None, **overrides) -> AsyncEngine:
    """Create the async engine for the configured database.

    SQLite (used by the test suite) does not accept the pool sizing or the
    asyncpg-specific connect arguments, so those are only passed for Postgres.
    """
    url = url or settings.database_url
    if not url:
        raise ConfigurationError("DATABASE_URL is not configured")

    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.database_echo, future=True, **overrides)

    return create_async_engine(
        url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        echo=settings.database_echo,
        future=True,
        # Disable prepared statement cache for PgBouncer compatibility
        connect_args={"statement_cache_size": 0},
        **overrides,
    )


engine = build_engine()

async_session_maker = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for getting async database session.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Run a block as one transaction: commit on success, roll back on any error.

    Unique constraint violations are re-raised untouched so callers can turn
    them into a duplicate diagnostic; every other SQLAlchemy failure becomes a
    StorageError.
    """
    try:
        yield session
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise
    except SQLAlchemyError as e:
        await session.rollback()
        LOGGER.error(f"Transaction rolled back: {e}", exc_info=True)
        raise StorageError("Mapping store failure", original_error=e) from e
    except BaseException:
        await session.rollback()
        raise


def _mapping_tables() -> List[str]:
    # Registers every model on Base.metadata
    from mapping_service.database import models  # noqa: F401

    return [table.name for table in Base.metadata.sorted_tables]


class DatabaseClient:
    """Owns the engine lifecycle and the schema of the mapping tables."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def connect(self) -> None:
        """Open one connection to prove the database is reachable."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            LOGGER.error(
                "Mapping database unreachable",
                exc_info=True,
                extra={"dialect": self.engine.dialect.name},
            )
            raise
        LOGGER.info("Mapping database reachable", extra={"dialect": self.engine.dialect.name})

    async def disconnect(self) -> None:
        await self.engine.dispose()
        LOGGER.info("Mapping database connections released")

    async def missing_tables(self) -> List[str]:
        """Mapping tables the connected database does not have yet."""
        expected = _mapping_tables()
        async with self.engine.connect() as conn:
            present = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
        return [name for name in expected if name not in present]

    async def create_tables(self) -> None:
        """Create the mapping tables that don't exist yet; existing ones are left alone."""
        tables = _mapping_tables()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        LOGGER.info("Mapping tables created/verified", extra={"tables": tables})

    async def drop_tables(self) -> None:
        """Drop every mapping table.

        WARNING: This deletes every mapping!
        """
        tables = _mapping_tables()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        LOGGER.warning("Mapping tables dropped", extra={"tables": tables})

    async def auto_migrate(self, drop_existing: bool = False) -> None:
        """Create the schema straight from the models.

        Deployed databases are migrated with alembic instead.

        Args:
            drop_existing: If True, drop existing tables before creating (WARNING: data loss!)
        """
        if drop_existing:
            await self.drop_tables()
        await self.create_tables()

    async def health_check(self) -> dict:
        """Report reachability and whether every mapping table exists."""
        try:
            missing = await self.missing_tables()
        except (SQLAlchemyError, OSError) as e:
            LOGGER.error("Mapping database health check failed", extra={"error": str(e)})
            return {"status": "unhealthy", "error": str(e)}

        if missing:
            LOGGER.warning("Mapping tables missing", extra={"missing": missing})
        return {
            "status": "degraded" if missing else "healthy",
            "dialect": self.engine.dialect.name,
            "missing_tables": missing,
        }


db_client = DatabaseClient(engine)


async def init_database(auto_migrate: bool = False, drop_existing: bool = False) -> None:
    """Check the database on startup and optionally create the schema.

    Args:
        auto_migrate: Whether to create missing tables on startup
        drop_existing: Whether to drop existing tables first (WARNING: data loss!)
    """
    await db_client.connect()

    if auto_migrate:
        await db_client.auto_migrate(drop_existing=drop_existing)
        return

    missing = await db_client.missing_tables()
    if missing:
        LOGGER.warning(
            "Mapping tables missing; run 'alembic upgrade head' or set DATABASE_AUTO_MIGRATE",
            extra={"missing": missing},
        )


async def close_database() -> None:
    await db_client.disconnect()
