from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from mapping_service.database.models import GroupMigration
from mapping_service.repositories.base_repository import BaseRepository


class GroupMigrationRepository(BaseRepository[GroupMigration]):
    """Which migration run last replaced each prisoner's mappings, per kind."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, GroupMigration)

    async def find(self, kind: str, group_key: str) -> Optional[GroupMigration]:
        return await self.get_one({"kind": kind, "group_key": group_key})

    async def record(self, kind: str, group_key: str, label: str, mappings_count: int) -> GroupMigration:
        """Insert or overwrite the summary row for a group."""
        existing = await self.find(kind, group_key)
        if existing is not None:
            await self.session.delete(existing)
            await self.session.flush()
        return await self.add(
            GroupMigration(kind=kind, group_key=group_key, label=label, mappings_count=mappings_count)
        )

    async def remove(self, kind: str, group_key: str) -> int:
        return await self.delete_where(
            GroupMigration.kind == kind, GroupMigration.group_key == group_key
        )
