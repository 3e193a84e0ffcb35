"""
Order ledger: append-only record of confirmed purchases.
The dedup_key unique constraint is what makes inserts idempotent; exists() is
only a fast path.
"""
from datetime import datetime, timezone
from sqlalchemy import select, insert
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.orm import Session
import logging
from typing import List, Dict, Any

from paystock.crud.base import CRUDBase
from paystock.exceptions import DuplicateKeyError, PersistenceError
from paystock.models import Order

logger = logging.getLogger(__name__)


class OrderLedger(CRUDBase[Order]):
    def __init__(self):
        super().__init__(Order)

    def exists(self, db: Session, dedup_key: str) -> bool:
        try:
            stmt = select(Order.id).where(Order.dedup_key == dedup_key).limit(1)
            return db.execute(stmt).first() is not None
        except SQLAlchemyError as e:
            logger.error(f"Error checking order {dedup_key}: {e}")
            raise PersistenceError(str(e)) from e

    def exists_recent(self, db: Session, fingerprint: str, since: datetime) -> bool:
        """True if an order with this purchase fingerprint was recorded after since."""
        try:
            stmt = (
                select(Order.id)
                .where(Order.fingerprint == fingerprint, Order.created_at > since)
                .limit(1)
            )
            return db.execute(stmt).first() is not None
        except SQLAlchemyError as e:
            logger.error(f"Error checking recent orders for {fingerprint}: {e}")
            raise PersistenceError(str(e)) from e

    def insert(self, db: Session, *, obj_in: Dict[str, Any]) -> int:
        """Insert an order and return its id. Raises DuplicateKeyError on a repeated dedup_key."""
        values = dict(obj_in)
        if values.get("created_at") is None:
            values["created_at"] = datetime.now(timezone.utc)
        for field in ("name", "address", "phone"):
            values[field] = values.get(field) or ""
        try:
            stmt = insert(Order).values(**values).returning(Order.id)
            return db.execute(stmt).scalar_one()
        except IntegrityError as e:
            # sqlite: "UNIQUE constraint failed: orders.dedup_key", postgres: "orders_dedup_key_key"
            message = str(e.orig).lower()
            if "unique" not in message or "dedup_key" not in message:
                logger.error(f"Order rejected by the schema: {e.orig}")
                raise PersistenceError(str(e.orig)) from e
            logger.warning(f"Duplicate order key {values.get('dedup_key')}: {e.orig}")
            raise DuplicateKeyError(values.get("dedup_key")) from e
        except SQLAlchemyError as e:
            logger.error(f"Error inserting order: {e}")
            raise PersistenceError(str(e)) from e

    def list_all(self, db: Session) -> List[Order]:
        """Order history, newest first"""
        return self.get_multi(db, order_by=(Order.created_at.desc(), Order.id.desc()))


order_ledger = OrderLedger()
