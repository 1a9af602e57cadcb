"""FastAPI dependency factories for the mapping services."""

from typing import Annotated

from fastapi import Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from mapping_service.core.database import get_async_session as get_session
from mapping_service.services.composite_service import CompositeMappingService
from mapping_service.services.kinds import MappingKind, get_kind
from mapping_service.services.mapping_service import MappingService
from mapping_service.services.reconciliation_service import ReconciliationService


def get_mapping_kind(
    kind: Annotated[str, Path(description="Mapping kind, e.g. csras or court-cases")]
) -> MappingKind:
    return get_kind(kind)


async def get_mapping_service(
    db_session: Annotated[AsyncSession, Depends(get_session)],
    kind: Annotated[MappingKind, Depends(get_mapping_kind)],
) -> MappingService:
    return MappingService(db_session, kind)


async def get_kind_reconciliation_service(
    db_session: Annotated[AsyncSession, Depends(get_session)],
    kind: Annotated[MappingKind, Depends(get_mapping_kind)],
) -> ReconciliationService:
    return ReconciliationService(db_session, [kind])


async def get_reconciliation_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> ReconciliationService:
    return ReconciliationService(db_session)


async def get_court_sentencing_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> CompositeMappingService:
    return CompositeMappingService(db_session)
