"""Pytest configuration and shared fixtures."""

import os

import pytest

# Set required environment variables for testing BEFORE importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from mapping_service.core.database import Base
from mapping_service.database import models  # noqa: F401
from mapping_service.database.models import MappingType
from mapping_service.main import app
from mapping_service.schemas.mappings import (
    AlertMappingDto,
    CourtAppearanceMappingDto,
    CourtCaseMappingDto,
    CourtChargeMappingDto,
    CsraMappingDto,
    TransactionMappingDto,
)


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
async def db_engine():
    """In-memory SQLite engine with every mapping table created."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def csra():
    """Build a CSRA mapping; keyword arguments override the defaults."""
    def _build(booking_id=54321, sequence=2, dps_id="edcd118c-41ba-42ea-b5c4-404b453ad58b",
               offender_no="A1234KT", **kwargs) -> CsraMappingDto:
        return CsraMappingDto(
            nomis_booking_id=booking_id,
            nomis_sequence=sequence,
            dps_csra_id=dps_id,
            offender_no=offender_no,
            **kwargs,
        )
    return _build


@pytest.fixture
def alert():
    def _build(booking_id, sequence, dps_id, offender_no="A1234KT", **kwargs) -> AlertMappingDto:
        return AlertMappingDto(
            nomis_booking_id=booking_id,
            nomis_alert_sequence=sequence,
            dps_alert_id=dps_id,
            offender_no=offender_no,
            **kwargs,
        )
    return _build


@pytest.fixture
def transaction():
    def _build(transaction_id, dps_id, offender_no="A1234KT", booking_id=None, **kwargs) -> TransactionMappingDto:
        return TransactionMappingDto(
            nomis_transaction_id=transaction_id,
            dps_transaction_id=dps_id,
            offender_no=offender_no,
            nomis_booking_id=booking_id,
            **kwargs,
        )
    return _build


@pytest.fixture
def court_case_tree():
    """A court case with two appearances and two charges, as a migration would send it."""
    def _build(nomis_case_id=101, dps_case_id="dps-case-1", label="2024-03-01T10:00:00",
               mapping_type=MappingType.MIGRATED, appearance_ids=(201, 202), charge_ids=(301, 302)):
        parent = CourtCaseMappingDto(
            nomis_court_case_id=nomis_case_id,
            dps_court_case_id=dps_case_id,
            label=label,
            mapping_type=mapping_type,
        )
        children = {
            "court_appearances": [
                CourtAppearanceMappingDto(
                    nomis_court_appearance_id=nomis_id, dps_court_appearance_id=f"dps-app-{nomis_id}"
                )
                for nomis_id in appearance_ids
            ],
            "court_charges": [
                CourtChargeMappingDto(nomis_court_charge_id=nomis_id, dps_court_charge_id=f"dps-charge-{nomis_id}")
                for nomis_id in charge_ids
            ],
        }
        return parent, children
    return _build
