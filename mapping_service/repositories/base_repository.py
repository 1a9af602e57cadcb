from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mapping_service.utils.logging import get_logger

# Define a generic type for SQLAlchemy models
ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Base repository implementing common data access operations.

    Repositories only flush; the calling service owns the transaction and
    decides when to commit or roll back.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: The SQLAlchemy model class this repository manages
        """
        self.session = session
        self.model = model
        self.logger = LOGGER

    def _filtered(self, query, filters: Optional[Dict[str, Any]]):
        if filters:
            for field, value in filters.items():
                query = query.where(getattr(self.model, field) == value)
        return query

    async def get_one(self, filters: Dict[str, Any]) -> Optional[ModelType]:
        """Get the single record matching every filter.

        Args:
            filters: Dictionary of field_name: value to filter by

        Returns:
            The record if found, None otherwise
        """
        try:
            query = self._filtered(select(self.model), filters)
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving {self.model.__name__} by {filters}: {str(e)}",
                exc_info=True
            )
            raise

    async def get_all(
        self,
        skip: int = 0,
        limit: Optional[int] = 200,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Sequence[str] = (),
    ) -> List[ModelType]:
        """Get all records with optional pagination, filtering and ordering.

        Args:
            skip: Number of records to skip
            limit: Maximum number of records to return, None for no limit
            filters: Dictionary of field_name: value to filter by
            order_by: Column names to sort ascending by

        Returns:
            List of records
        """
        try:
            query = self._filtered(select(self.model), filters)
            if order_by:
                query = query.order_by(*(getattr(self.model, field) for field in order_by))
            query = query.offset(skip)
            if limit is not None:
                query = query.limit(limit)
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving all {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def add(self, instance: ModelType) -> ModelType:
        """Stage a new record and flush it so constraints are checked now.

        Raises:
            IntegrityError: when the record breaks a unique constraint
        """
        try:
            self.session.add(instance)
            await self.session.flush()
            return instance
        except IntegrityError:
            self.logger.warning(f"Unique constraint violated inserting {self.model.__name__}")
            raise
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error creating {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def delete_where(self, *criteria) -> int:
        """Delete every record matching the criteria.

        Returns:
            Number of records deleted
        """
        statement = delete(self.model)
        if criteria:
            statement = statement.where(*criteria)
        try:
            result = await self.session.execute(statement)
            return result.rowcount or 0
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error deleting {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records matching filters.

        Args:
            filters: Dictionary of field_name: value to filter by

        Returns:
            Count of matching records
        """
        try:
            query = self._filtered(select(func.count()).select_from(self.model), filters)
            result = await self.session.execute(query)
            return result.scalar_one()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error counting {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise
