from contextlib import asynccontextmanager
from typing import Optional, Type, TypeVar, Generic, Dict, Any, AsyncIterator
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError

from quizengine.db.base import BaseModel
from quizengine.utils.exceptions import CustomException, DatabaseError, NotFoundError
from quizengine.core.logging import get_logger

logger = get_logger(__name__)

ModelType = TypeVar("ModelType", bound=BaseModel)


@asynccontextmanager
async def unit_of_work(db: AsyncSession, operation: str) -> AsyncIterator[AsyncSession]:
    """
    Run a block as one atomic unit: commit when it completes, roll back
    every write when anything inside it raises.
    """
    try:
        yield db
        await db.commit()
    except CustomException:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Transaction failed during {operation}: {e}", extra={"operation": operation})
        raise DatabaseError(f"Failed to {operation}")
    except Exception:
        await db.rollback()
        raise


class BaseRepository(Generic[ModelType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    async def create(self, db: AsyncSession, **kwargs) -> ModelType:
        """Create a new record"""
        try:
            db_obj = self.model(**kwargs)
            db.add(db_obj)
            await db.flush()
            await db.refresh(db_obj)
            return db_obj
        except SQLAlchemyError as e:
            logger.error(f"Database error creating {self.model.__name__}: {e}")
            raise DatabaseError(f"Failed to create {self.model.__name__}")

    async def get_by_id(self, db: AsyncSession, id: int, for_update: bool = False) -> Optional[ModelType]:
            """Get record by ID"""
            try:
                query = select(self.model).where(self.model.id == id)
                if for_update:
                    query = query.with_for_update().execution_options(populate_existing=True)
                result = await db.execute(query)
                return result.scalar_one_or_none()
            except SQLAlchemyError as e:
                logger.error(f"Error getting {self.model.__name__} by ID {id}: {e}")
                raise DatabaseError(f"Failed to get {self.model.__name__}")

    async def get_by_id_or_404(self, db: AsyncSession, id: int, for_update: bool = False) -> ModelType:
            """Get record by ID or raise 404"""
            obj = await self.get_by_id(db, id, for_update=for_update)
            if not obj:
                raise NotFoundError(f"{self.model.__name__} not found", resource_type=self.model.__name__)
            return obj

    async def update(self, db: AsyncSession, id: int, keep_none: bool = False, **kwargs) -> Optional[ModelType]:
            """Update record by ID; None values are left untouched unless keep_none is set"""
            try:
                update_data = kwargs if keep_none else {k: v for k, v in kwargs.items() if v is not None}

                if not update_data:
                    return await self.get_by_id(db, id)

                await db.execute(
                    update(self.model)
                    .where(self.model.id == id)
                    .values(**update_data)
                    .execution_options(synchronize_session=False)
                )
                await db.flush()
                result = await db.execute(
                    select(self.model)
                    .where(self.model.id == id)
                    .execution_options(populate_existing=True)
                )
                return result.scalar_one_or_none()
            except SQLAlchemyError as e:
                logger.error(f"Database error updating {self.model.__name__}: {e}")
                raise DatabaseError(f"Failed to update {self.model.__name__}")

    async def delete(self, db: AsyncSession, id: int) -> bool:
            """Delete record by ID through the ORM so relationship cascades apply"""
            try:
                db_obj = await self.get_by_id(db, id)
                if db_obj is None:
                    return False
                await db.delete(db_obj)
                await db.flush()
                return True
            except SQLAlchemyError as e:
                logger.error(f"Error deleting {self.model.__name__} {id}: {e}")
                raise DatabaseError(f"Failed to delete {self.model.__name__}")

    async def count(self, db: AsyncSession, filters: Optional[Dict[str, Any]] = None) -> int:
            """Count records with optional filtering"""
            try:
                query = select(func.count(self.model.id))

                if filters:
                    for key, value in filters.items():
                        if hasattr(self.model, key):
                            query = query.where(getattr(self.model, key) == value)

                result = await db.execute(query)
                return result.scalar() or 0
            except SQLAlchemyError as e:
                logger.error(f"Error counting {self.model.__name__}: {e}")
                raise DatabaseError(f"Failed to count {self.model.__name__} records")
