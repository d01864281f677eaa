"""
Base Repository Pattern Implementation
AlertBridge Trade Automation

Provides generic async CRUD operations keyed by primary key. Repositories flush but never commit; the caller owns the
transaction boundary.
"""

from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from alertbridge.core.exceptions import PersistenceError
from alertbridge.db.base import Base


ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Generic async repository with CRUD operations.

    Type Parameters:
        ModelType: SQLAlchemy model class
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get(self, id: int) -> Optional[ModelType]:
        """
        Get a single record by ID.

        Args:
            id: Primary key value

        Returns:
            Model instance or None
        """
        return await self.session.get(self.model, id)

    async def create(self, **values: Any) -> ModelType:
        """Insert a new row and flush so its primary key is populated."""
        instance = self.model(**values)
        self.session.add(instance)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to insert {self.model.__name__}: {e}") from e
        return instance

    async def update(self, instance: ModelType, **values: Any) -> ModelType:
        """Apply column values to a loaded row and flush."""
        for field_name, value in values.items():
            setattr(instance, field_name, value)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update {self.model.__name__}: {e}") from e
        return instance
