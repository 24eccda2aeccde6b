"""
Base repository with common CRUD operations.
Implements the Repository pattern for data access abstraction.
"""
from typing import Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.database import Base
from storefront.core.exceptions import DuplicateOrderError, OrderPersistenceError

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository providing common database operations.

    Subclasses should set the `model` class attribute to the SQLAlchemy model.
    Driver errors are translated into domain errors on flush.
    """

    model: type[ModelType]

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, id: str) -> ModelType | None:
        """Get a single record by its primary key."""
        return await self.session.get(self.model, id)

    async def _flush(self) -> None:
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicateOrderError(
                f"{self.model.__name__} violates a uniqueness constraint"
            ) from e
        except SQLAlchemyError as e:
            raise OrderPersistenceError(
                f"Failed to write {self.model.__name__}: {e.__class__.__name__}"
            ) from e

    async def insert(self, db_obj: ModelType) -> ModelType:
        """Insert a new record."""
        self.session.add(db_obj)
        await self._flush()
        return db_obj

    async def save(self, db_obj: ModelType) -> ModelType:
        """Flush pending changes of a loaded record."""
        self.session.add(db_obj)
        await self._flush()
        return db_obj

    async def remove(self, db_obj: ModelType) -> None:
        """Delete a record."""
        await self.session.delete(db_obj)
        await self._flush()

    async def count(self) -> int:
        """Count total records."""
        stmt = select(func.count()).select_from(self.model)
        result = await self.session.execute(stmt)
        return result.scalar() or 0
