"""Single and batch mapping registry operations, generic over entity kind."""

import math
from functools import partial
from typing import Any, Callable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mapping_service.core.database import unit_of_work
from mapping_service.core.exceptions import DuplicateMappingError, NotFoundError, ValidationError
from mapping_service.repositories.mapping_repository import MappingRepository
from mapping_service.repositories.migration_repository import GroupMigrationRepository
from mapping_service.schemas.common import GroupCount, Page
from mapping_service.schemas.mappings import GroupMigrationDto, MappingDto
from mapping_service.services.conflict_detector import ConflictDetector
from mapping_service.services.kinds import LegacyKey, MappingKind
from mapping_service.utils.logging import get_logger

LOGGER = get_logger(__name__)


def build_page(items: list, total: int, page: int, size: int) -> Page:
    return Page(
        items=items,
        total=total,
        page=page,
        size=size,
        total_pages=math.ceil(total / size) if size else 0,
    )


def check_paging(page: int, size: int) -> None:
    if page < 0:
        raise ValidationError("page must not be negative")
    if size < 1:
        raise ValidationError("size must be at least 1")


Replaced = Callable[[MappingKind, Any], bool]


def _internal_duplicate(
    groups: Sequence[Tuple["MappingService", Sequence[MappingDto], Optional[str]]],
    error: IntegrityError,
) -> Optional[DuplicateMappingError]:
    for service, candidates, level in groups:
        first, second = service.find_internal_duplicate(candidates)
        if first is not None:
            return DuplicateMappingError(
                f"Conflict: {service.kind.name} mapping duplicated within the request",
                existing=first,
                duplicate=second,
                kind=service.kind.name,
                level=level,
                original_error=error,
            )
    return None


async def explain_integrity_error(
    groups: Sequence[Tuple["MappingService", Sequence[MappingDto], Optional[str]]],
    error: IntegrityError,
    replaced: Optional[Replaced] = None,
) -> DuplicateMappingError:
    """Explain a unique violation once the failed transaction has been rolled back.

    Either a candidate collides with committed data (possibly written by a
    concurrent request) or two candidates of the request collide with each
    other.

    Args:
        groups: (service, candidates, level) for every store the request wrote to
        error: The violation raised by the database
        replaced: For replace operations, tells which committed rows the
            request deleted before inserting. Those rows cannot be the cause,
            so duplicates inside the request are looked for first and such
            rows are never reported as ``existing``.
    """
    if replaced is not None:
        duplicate_error = _internal_duplicate(groups, error)
        if duplicate_error is not None:
            return duplicate_error

    for service, candidates, level in groups:
        ignore = None
        if replaced is not None:
            ignore = partial(replaced, service.kind)
        for candidate in candidates:
            conflict = await service.detector.detect(candidate, ignore)
            if conflict is not None:
                duplicate_error = conflict.to_error(level)
                duplicate_error.original_error = error
                return duplicate_error

    LOGGER.error(f"Unique constraint violated: {error.orig}")
    duplicate_error = _internal_duplicate(groups, error)
    if duplicate_error is not None:
        return duplicate_error

    service, candidates, level = groups[0]
    return DuplicateMappingError(
        f"Conflict: {service.kind.name} mapping already exists",
        existing=None,
        duplicate=candidates[0] if candidates else None,
        kind=service.kind.name,
        level=level,
        original_error=error,
    )


class MappingService:
    """Creates, reads and deletes mappings of one kind.

    Every public write is a single transaction. The ``stage_*`` helpers write
    without committing so composite and reconciliation services can combine
    several stores into one transaction.
    """

    def __init__(self, session: AsyncSession, kind: MappingKind):
        self.session = session
        self.kind = kind
        self.repository = MappingRepository(session, kind)
        self.detector = ConflictDetector(self.repository)
        self.migrations = GroupMigrationRepository(session)

    async def stage_insert(self, dto: MappingDto, level: Optional[str] = None) -> MappingDto:
        """Insert after checking both keys; an identical existing mapping is returned as is."""
        check = await self.detector.check(dto)
        if check.conflict is not None:
            raise check.conflict.to_error(level)
        if check.already_mapped is not None:
            LOGGER.info(
                f"Not creating {self.kind.name} mapping, already exists",
                extra={"legacy_key": self.kind.legacy_key(dto), "modern_key": self.kind.modern_key(dto)},
            )
            return self.kind.to_dto(check.already_mapped)
        row = await self.repository.insert(self.kind.to_model(dto))
        return self.kind.to_dto(row)

    async def stage_insert_unchecked(self, dto: MappingDto) -> MappingDto:
        row = await self.repository.insert(self.kind.to_model(dto))
        return self.kind.to_dto(row)

    async def duplicate_from_integrity_error(
        self,
        candidates: Sequence[MappingDto],
        error: IntegrityError,
        level: Optional[str] = None,
        replaced: Optional[Replaced] = None,
    ) -> DuplicateMappingError:
        return await explain_integrity_error([(self, candidates, level)], error, replaced)

    def find_internal_duplicate(
        self, candidates: Sequence[MappingDto]
    ) -> Tuple[Optional[MappingDto], Optional[MappingDto]]:
        """First pair of candidates sharing a legacy or a modern key."""
        seen_legacy = {}
        seen_modern = {}
        for candidate in candidates:
            legacy_key = self.kind.legacy_key(candidate)
            modern_key = self.kind.modern_key(candidate)
            earlier = seen_legacy.get(legacy_key) or seen_modern.get(modern_key)
            if earlier is not None:
                return earlier, candidate
            seen_legacy[legacy_key] = candidate
            seen_modern[modern_key] = candidate
        return None, None

    async def create(self, dto: MappingDto) -> MappingDto:
        """Create one mapping.

        Raises:
            DuplicateMappingError: when another mapping owns either key
        """
        dto = self.kind.check_dto(dto)
        try:
            async with unit_of_work(self.session):
                created = await self.stage_insert(dto)
        except IntegrityError as e:
            raise await self.duplicate_from_integrity_error([dto], e) from e

        LOGGER.info(
            f"{self.kind.name} mapping created",
            extra={
                "legacy_key": self.kind.legacy_key(created),
                "modern_key": self.kind.modern_key(created),
                "mapping_type": created.mapping_type.value,
            },
        )
        return created

    async def create_batch(self, dtos: Sequence[MappingDto]) -> List[MappingDto]:
        """Create every mapping or none of them.

        Records are checked in order; the first conflict aborts the batch.
        """
        dtos = [self.kind.check_dto(dto) for dto in dtos]
        try:
            async with unit_of_work(self.session):
                created = [await self.stage_insert(dto) for dto in dtos]
        except IntegrityError as e:
            raise await self.duplicate_from_integrity_error(dtos, e) from e

        LOGGER.info(f"{len(created)} {self.kind.name} mappings created", extra={"count": len(created)})
        return created

    async def create_or_replace_for_group(
        self,
        group: str,
        dtos: Sequence[MappingDto],
        label: Optional[str] = None,
    ) -> List[MappingDto]:
        """Make ``dtos`` the complete set of mappings held by ``group``."""
        return await self._replace_groups(group, dtos, label)

    async def replace_for_group_after_merge(
        self,
        group: str,
        removed_group: str,
        dtos: Sequence[MappingDto],
        label: Optional[str] = None,
    ) -> List[MappingDto]:
        """Replace the retained prisoner's mappings and drop the removed prisoner's.

        Used once NOMIS has merged ``removed_group`` into ``group`` and the
        retained record's mappings were migrated again. Both happen in one
        transaction.
        """
        if removed_group == group:
            raise ValidationError(f"Cannot merge {group} into itself")
        return await self._replace_groups(group, dtos, label, removed_group=removed_group)

    async def _replace_groups(
        self,
        group: str,
        dtos: Sequence[MappingDto],
        label: Optional[str],
        removed_group: Optional[str] = None,
    ) -> List[MappingDto]:
        group_field = self.kind.require_group()
        dtos = [self.kind.check_dto(dto) for dto in dtos]
        for dto in dtos:
            if getattr(dto, group_field) != group:
                raise ValidationError(
                    f"{self.kind.name} mapping for {getattr(dto, group_field)} cannot be stored under {group}"
                )
        cleared = {group} if removed_group is None else {group, removed_group}

        try:
            async with unit_of_work(self.session):
                deleted = 0
                for cleared_group in sorted(cleared):
                    deleted += await self.repository.delete_by_group(cleared_group)
                created = [await self.stage_insert_unchecked(dto) for dto in dtos]
                if label:
                    await self.migrations.record(self.kind.name, group, label, len(created))
        except IntegrityError as e:
            raise await self.duplicate_from_integrity_error(
                dtos, e, replaced=lambda kind, row: kind.group_key(row) in cleared
            ) from e

        LOGGER.info(
            f"{self.kind.name} mappings replaced for {group}",
            extra={
                "group": group,
                "removed_group": removed_group,
                "deleted": deleted,
                "inserted": len(created),
                "label": label,
            },
        )
        return created

    async def get_by_legacy_key(self, key: LegacyKey) -> MappingDto:
        row = await self.repository.find_by_legacy_key(key)
        if row is None:
            raise NotFoundError(
                f"No {self.kind.name} mapping found for {self.kind.describe_legacy_key(key)}"
            )
        return self.kind.to_dto(row)

    async def get_by_modern_key(self, key: str) -> MappingDto:
        row = await self.repository.find_by_modern_key(key)
        if row is None:
            raise NotFoundError(f"No {self.kind.name} mapping found for {self.kind.modern_field}={key}")
        return self.kind.to_dto(row)

    async def get_latest_migrated(self) -> MappingDto:
        row = await self.repository.find_latest_migrated()
        if row is None:
            raise NotFoundError(f"No migrated {self.kind.name} mapping found")
        return self.kind.to_dto(row)

    async def list_by_group(self, group: str) -> List[MappingDto]:
        return [self.kind.to_dto(row) for row in await self.repository.find_by_group(group)]

    async def list_by_label(self, label: str, page: int = 0, size: int = 20) -> Page:
        check_paging(page, size)
        total = await self.repository.count_by_label(label)
        rows = await self.repository.find_by_label(label, skip=page * size, limit=size)
        return build_page([self.kind.to_dto(row) for row in rows], total, page, size)

    async def list_by_label_grouped(self, label: str, page: int = 0, size: int = 20) -> Page:
        check_paging(page, size)
        total = await self.repository.count_groups_by_label(label)
        rows = await self.repository.count_by_label_grouped(label, skip=page * size, limit=size)
        items = [
            GroupCount(group_key=group_key, count=count, earliest_when_created=earliest)
            for group_key, count, earliest in rows
        ]
        return build_page(items, total, page, size)

    async def delete_by_legacy_key(self, key: LegacyKey) -> int:
        async with unit_of_work(self.session):
            deleted = await self.repository.delete_by_legacy_key(key)
        LOGGER.info(
            f"{self.kind.name} mapping deleted by NOMIS id",
            extra={"legacy_key": key, "deleted": deleted},
        )
        return deleted

    async def delete_by_modern_key(self, key: str) -> int:
        async with unit_of_work(self.session):
            deleted = await self.repository.delete_by_modern_key(key)
        LOGGER.info(
            f"{self.kind.name} mapping deleted by DPS id",
            extra={"modern_key": key, "deleted": deleted},
        )
        return deleted

    async def delete_all(self) -> int:
        async with unit_of_work(self.session):
            deleted = await self.repository.delete_all()
        LOGGER.warning(f"All {self.kind.name} mappings deleted", extra={"deleted": deleted})
        return deleted

    async def get_group_migration(self, group: str) -> GroupMigrationDto:
        self.kind.require_group()
        summary = await self.migrations.find(self.kind.name, group)
        if summary is None:
            raise NotFoundError(f"No {self.kind.name} migration recorded for {group}")
        return GroupMigrationDto.model_validate(summary)

    async def delete_group_migration(self, group: str) -> int:
        self.kind.require_group()
        async with unit_of_work(self.session):
            return await self.migrations.remove(self.kind.name, group)
