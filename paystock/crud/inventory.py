"""
Inventory ledger:
- Stock only changes through the conditional decrement
- Stock never goes below zero
- No commits here, the coordinator owns the transaction
"""
from dataclasses import dataclass
from sqlalchemy import select, insert, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging
from typing import List, Optional, Iterable, Dict, Any

from paystock.crud.base import CRUDBase
from paystock.exceptions import PersistenceError
from paystock.models import Product

logger = logging.getLogger(__name__)

SEED_PRODUCTS = [
    {"name": "Trainer free size", "price": 8500, "stock": 9},
]


@dataclass(frozen=True)
class DecrementResult:
    ok: bool


class InventoryLedger(CRUDBase[Product]):
    def __init__(self):
        super().__init__(Product)

    def get_by_name(self, db: Session, name: str) -> Optional[Product]:
        """Get product by name"""
        try:
            stmt = select(Product).where(Product.name == name)
            return db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting product by name {name}: {e}")
            raise PersistenceError(str(e)) from e

    def try_decrement(self, db: Session, product_name: str) -> DecrementResult:
        """
        Take one unit of stock if any is left.
        The stock > 0 guard and the write are one UPDATE statement, so racing
        callers are serialized by the database and cannot lose updates.
        """
        try:
            stmt = (
                update(Product)
                .where(Product.name == product_name, Product.stock > 0)
                .values(stock=Product.stock - 1)
                .execution_options(synchronize_session=False)
            )
            result = db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Error decrementing stock for {product_name}: {e}")
            raise PersistenceError(str(e)) from e

        if result.rowcount == 0:
            logger.info(f"No stock left for {product_name}")
            return DecrementResult(ok=False)
        return DecrementResult(ok=True)

    def list_products(self, db: Session) -> List[Product]:
        """Catalog listing, read-only"""
        return self.get_multi(db, order_by=Product.id)

    def seed(self, db: Session, products: Iterable[Dict[str, Any]] = SEED_PRODUCTS) -> int:
        """Insert seed products when the catalog is empty. Returns rows inserted."""
        try:
            count = db.execute(select(func.count()).select_from(Product)).scalar_one()
            if count:
                return 0
            rows = list(products)
            if rows:
                db.execute(insert(Product), rows)
            return len(rows)
        except SQLAlchemyError as e:
            logger.error(f"Error seeding products: {e}")
            raise PersistenceError(str(e)) from e


inventory_ledger = InventoryLedger()
