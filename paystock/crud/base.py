"""
Base CRUD operations with SQLAlchemy 2.x patterns.
Ledger methods never commit; the caller owns the transaction.
"""
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging
from typing import TypeVar, Generic, Type, Optional, List, Any

from paystock.exceptions import PersistenceError
from paystock.models import Base

logger = logging.getLogger(__name__)
ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get_multi(
        self,
        db: Session,
        *,
        order_by: Any = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[ModelType]:
        """Get multiple records using SQLAlchemy 2.x select()"""
        try:
            stmt = select(self.model)
            if order_by is not None:
                stmt = stmt.order_by(*order_by) if isinstance(order_by, (list, tuple)) else stmt.order_by(order_by)
            stmt = stmt.offset(skip)
            if limit is not None:
                stmt = stmt.limit(limit)
            return list(db.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error getting multiple {self.model.__name__}: {e}")
            raise PersistenceError(str(e)) from e
