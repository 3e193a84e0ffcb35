"""
SQLAlchemy 2.x models.
Stock and order history live in the same database so one transaction covers both.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, CheckConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
import enum

Base = declarative_base()


class PaymentMethod(str, enum.Enum):
    CARD = "CARD"
    WALLET = "WALLET"


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String(200), unique=True, nullable=False)
    price = Column(Integer, nullable=False)  # minor currency unit
    stock = Column(Integer, nullable=False, default=0)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    amount = Column(Integer, nullable=False)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    method = Column(String(10), nullable=False)
    name = Column(Text, nullable=False, default="")
    address = Column(Text, nullable=False, default="")
    phone = Column(String(50), nullable=False, default="")
    # Upstream transaction id or wallet idempotency token; one order per key
    dedup_key = Column(String(255), unique=True, nullable=False)
    # Purchase fingerprint for wallet payments sent without a token
    fingerprint = Column(String(64), nullable=True, index=True)
