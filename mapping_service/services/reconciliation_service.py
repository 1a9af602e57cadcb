"""Bulk rewrites that follow identity changes in the legacy system.

A prisoner merge folds one prisoner number into another; a booking move
re-homes the mappings of one booking under a different prisoner.
"""

from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from mapping_service.core.database import unit_of_work
from mapping_service.core.exceptions import ValidationError
from mapping_service.schemas.mappings import MovedMapping
from mapping_service.services.kinds import GROUPED_KINDS, MappingKind
from mapping_service.services.mapping_service import MappingService
from mapping_service.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ReconciliationService:
    """Applies merges and moves across every grouped store in one transaction."""

    def __init__(self, session: AsyncSession, kinds: Optional[Sequence[MappingKind]] = None):
        self.session = session
        kinds = list(kinds) if kinds is not None else GROUPED_KINDS
        for kind in kinds:
            kind.require_group()
        self.services = [MappingService(session, kind) for kind in kinds]

    @property
    def parented_services(self) -> List[MappingService]:
        return [service for service in self.services if service.kind.parent_field]

    @staticmethod
    def _moved(service: MappingService, rows) -> List[MovedMapping]:
        return [
            MovedMapping(kind=service.kind.name, mapping=service.kind.to_dto(row).model_dump(mode="json"))
            for row in rows
        ]

    async def merge_group(self, from_group: str, to_group: str) -> List[MovedMapping]:
        """Move every mapping of ``from_group`` to ``to_group``.

        Returns:
            The rewritten mappings; empty when ``from_group`` holds nothing,
            so repeating a merge is harmless.
        """
        if from_group == to_group:
            raise ValidationError(f"Cannot merge {from_group} into itself")

        moved: List[MovedMapping] = []
        async with unit_of_work(self.session):
            for service in self.services:
                rows = await service.repository.rewrite_group(from_group, to_group)
                moved.extend(self._moved(service, rows))

        LOGGER.info(
            "Prisoner mappings merged",
            extra={"from_group": from_group, "to_group": to_group, "count": len(moved)},
        )
        return moved

    async def find_by_parent_id(self, parent_id: int) -> List[MovedMapping]:
        found: List[MovedMapping] = []
        for service in self.parented_services:
            found.extend(self._moved(service, await service.repository.find_by_parent(parent_id)))
        return found

    async def move_by_parent_id(
        self, parent_id: int, to_group: str, from_group: Optional[str] = None
    ) -> List[MovedMapping]:
        """Move the mappings of one booking to ``to_group``.

        With ``from_group`` given, the booking's mappings must currently sit in
        ``from_group`` (or already in ``to_group``, in which case nothing moves).
        When the mappings span several groups the check cannot be applied; every
        mapping not yet in ``to_group`` is moved and a warning is logged.

        Raises:
            ValidationError: when the booking belongs to a group other than ``from_group``
        """
        services = self.parented_services
        if not services:
            raise ValidationError("None of the requested mappings are keyed by booking")

        moved: List[MovedMapping] = []
        async with unit_of_work(self.session):
            groups = set()
            for service in services:
                for row in await service.repository.find_by_parent(parent_id):
                    groups.add(service.kind.group_key(row))

            if from_group is not None and groups:
                if len(groups) == 1:
                    current = next(iter(groups))
                    if current not in (from_group, to_group):
                        raise ValidationError(
                            f"Booking {parent_id} mappings belong to {current}, not {from_group}"
                        )
                else:
                    LOGGER.warning(
                        f"Booking {parent_id} mappings span several prisoners, moving each to {to_group}",
                        extra={"groups": sorted(groups), "from_group": from_group},
                    )

            for service in services:
                rows = await service.repository.rewrite_group_by_parent(parent_id, to_group)
                moved.extend(self._moved(service, rows))

        LOGGER.info(
            "Booking mappings moved",
            extra={"parent_id": parent_id, "from_group": from_group, "to_group": to_group, "count": len(moved)},
        )
        return moved
