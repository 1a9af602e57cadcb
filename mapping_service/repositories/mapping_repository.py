"""Key pair store: data access for one kind of mapping."""

from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mapping_service.database.models import MappingType
from mapping_service.repositories.base_repository import BaseRepository
from mapping_service.services.kinds import LegacyKey, MappingKind


class MappingRepository(BaseRepository[Any]):
    """Generic store over any ``MappingKind``.

    Listings are ordered by the legacy key so paging is stable.
    """

    def __init__(self, session: AsyncSession, kind: MappingKind):
        super().__init__(session, kind.model)
        self.kind = kind

    def _legacy_filters(self, key: Sequence[Any]) -> dict:
        return dict(zip(self.kind.legacy_fields, key))

    def _column(self, field: str):
        return getattr(self.model, field)

    async def _locked_rows(self, *criteria) -> List[Any]:
        """Select rows that are about to be rewritten, locking them where supported."""
        query = (
            select(self.model)
            .where(*criteria)
            .order_by(*(self._column(field) for field in self.kind.legacy_fields))
            .with_for_update()
        )
        try:
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking {self.kind.name} mappings: {str(e)}", exc_info=True)
            raise

    async def insert(self, row: Any) -> Any:
        """Add a row and reload it so the stored creation time is returned."""
        row = await self.add(row)
        await self.session.refresh(row)
        return row

    async def find_by_legacy_key(self, key: LegacyKey) -> Optional[Any]:
        return await self.get_one(self._legacy_filters(key))

    async def find_by_modern_key(self, key: str) -> Optional[Any]:
        return await self.get_one({self.kind.modern_field: key})

    async def find_by_label(self, label: str, skip: int = 0, limit: int = 20) -> List[Any]:
        """Migrated rows carrying ``label``; synchronised rows are never listed."""
        return await self.get_all(
            skip=skip,
            limit=limit,
            filters={"label": label, "mapping_type": MappingType.MIGRATED},
            order_by=self.kind.legacy_fields,
        )

    async def count_by_label(self, label: str) -> int:
        return await self.count({"label": label, "mapping_type": MappingType.MIGRATED})

    async def count_by_label_grouped(
        self, label: str, skip: int = 0, limit: int = 20
    ) -> List[Tuple[str, int, Any]]:
        """Per group: number of rows carrying the label and the earliest creation time."""
        group_column = self._column(self.kind.require_group())
        query = (
            select(group_column, func.count(), func.min(self.model.when_created))
            .where(self.model.label == label)
            .group_by(group_column)
            .order_by(group_column)
            .offset(skip)
            .limit(limit)
        )
        try:
            result = await self.session.execute(query)
            return [tuple(row) for row in result.all()]
        except SQLAlchemyError as e:
            self.logger.error(f"Error grouping {self.kind.name} by label {label}: {str(e)}", exc_info=True)
            raise

    async def count_groups_by_label(self, label: str) -> int:
        group_column = self._column(self.kind.require_group())
        query = select(func.count(func.distinct(group_column))).where(self.model.label == label)
        try:
            result = await self.session.execute(query)
            return result.scalar_one()
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting {self.kind.name} groups for {label}: {str(e)}", exc_info=True)
            raise

    async def find_latest_migrated(self) -> Optional[Any]:
        query = (
            select(self.model)
            .where(self.model.mapping_type == MappingType.MIGRATED)
            .order_by(self.model.when_created.desc())
            .limit(1)
        )
        try:
            result = await self.session.execute(query)
            return result.scalars().first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding latest migrated {self.kind.name}: {str(e)}", exc_info=True)
            raise

    async def find_by_group(self, group: str) -> List[Any]:
        return await self.get_all(
            limit=None, filters={self.kind.require_group(): group}, order_by=self.kind.legacy_fields
        )

    async def find_by_parent(self, parent_id: int) -> List[Any]:
        return await self.get_all(
            limit=None, filters={self.kind.parent_field: parent_id}, order_by=self.kind.legacy_fields
        )

    async def find_by_owner(self, owner: str) -> List[Any]:
        return await self.get_all(
            limit=None, filters={self.kind.owner_field: owner}, order_by=self.kind.legacy_fields
        )

    async def delete_by_legacy_key(self, key: LegacyKey) -> int:
        return await self.delete_where(
            *(self._column(field) == value for field, value in self._legacy_filters(key).items())
        )

    async def delete_by_modern_key(self, key: str) -> int:
        return await self.delete_where(self._column(self.kind.modern_field) == key)

    async def delete_by_group(self, group: str) -> int:
        return await self.delete_where(self._column(self.kind.require_group()) == group)

    async def delete_by_owner(self, owner: str) -> int:
        return await self.delete_where(self._column(self.kind.owner_field) == owner)

    async def delete_all(self) -> int:
        return await self.delete_where()

    async def rewrite_legacy_key(self, old_key: LegacyKey, new_key: LegacyKey) -> int:
        """Point the mapping held under ``old_key`` at ``new_key``.

        Returns:
            Number of rows rewritten (0 when nothing holds the old key)
        """
        return await self.rewrite_legacy_keys([(old_key, new_key)])

    async def rewrite_legacy_keys(self, changes: Sequence[Tuple[LegacyKey, LegacyKey]]) -> int:
        """Apply several legacy key changes at once.

        Rows are parked on temporary keys first so ids swapped or shifted
        within one call never collide. NOMIS ids are positive, so negative
        placeholders cannot clash with stored keys.
        """
        moved = []
        for index, (old_key, new_key) in enumerate(changes, start=1):
            rows = await self._locked_rows(
                *(self._column(field) == value for field, value in self._legacy_filters(old_key).items())
            )
            for row in rows:
                for field in self.kind.legacy_fields:
                    setattr(row, field, -index)
                moved.append((row, new_key))
        await self.session.flush()

        for row, new_key in moved:
            for field, value in self._legacy_filters(new_key).items():
                setattr(row, field, value)
        await self.session.flush()
        return len(moved)

    async def rewrite_group(self, from_group: str, to_group: str) -> List[Any]:
        group_field = self.kind.require_group()
        rows = await self._locked_rows(self._column(group_field) == from_group)
        for row in rows:
            setattr(row, group_field, to_group)
        await self.session.flush()
        return rows

    async def rewrite_group_by_parent(self, parent_id: int, to_group: str) -> List[Any]:
        """Move every row under ``parent_id`` that is not already in ``to_group``."""
        group_field = self.kind.require_group()
        rows = await self._locked_rows(
            self._column(self.kind.parent_field) == parent_id,
            self._column(group_field) != to_group,
        )
        for row in rows:
            setattr(row, group_field, to_group)
        await self.session.flush()
        return rows
