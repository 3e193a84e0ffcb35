"""
Payment confirmation coordinator.

Applies a verified confirmation exactly once: the duplicate check, the stock
decrement and the order insert run in one transaction, and a repeated
de-duplication key can never decrement stock twice. Mail goes out after the
transaction has closed and never affects its outcome.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import enum
import logging
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from paystock.crud.inventory import InventoryLedger, inventory_ledger
from paystock.crud.orders import OrderLedger, order_ledger
from paystock.exceptions import DuplicateKeyError, PersistenceError
from paystock.models import PaymentMethod
from paystock.payments.events import ConfirmationEvent

logger = logging.getLogger(__name__)


class ConfirmationState(str, enum.Enum):
    RECEIVED = "RECEIVED"
    DEDUP_CHECKED = "DEDUP_CHECKED"
    APPLIED = "APPLIED"
    REJECTED_DUPLICATE = "REJECTED_DUPLICATE"
    REJECTED_OUT_OF_STOCK = "REJECTED_OUT_OF_STOCK"
    REJECTED_PRICE_MISMATCH = "REJECTED_PRICE_MISMATCH"
    REJECTED_UNKNOWN_PRODUCT = "REJECTED_UNKNOWN_PRODUCT"


REASONS = {
    ConfirmationState.APPLIED: "applied",
    ConfirmationState.REJECTED_DUPLICATE: "duplicate",
    ConfirmationState.REJECTED_OUT_OF_STOCK: "out_of_stock",
    ConfirmationState.REJECTED_PRICE_MISMATCH: "price_mismatch",
    ConfirmationState.REJECTED_UNKNOWN_PRODUCT: "unknown_product",
}


@dataclass(frozen=True)
class ConfirmationResult:
    state: ConfirmationState
    order_id: Optional[int] = None
    # Mail handed to the notifier (delivery itself is not tracked)
    notified: bool = False

    @property
    def applied(self) -> bool:
        return self.state is ConfirmationState.APPLIED

    @property
    def duplicate(self) -> bool:
        return self.state is ConfirmationState.REJECTED_DUPLICATE

    @property
    def reason(self) -> str:
        return REASONS[self.state]


class SupportsNotify(Protocol):
    def notify(self, subject: str, body: str): ...


class PaymentConfirmationCoordinator:
    def __init__(
        self,
        session_factory: sessionmaker,
        notifier: Optional[SupportsNotify] = None,
        inventory: InventoryLedger = inventory_ledger,
        orders: OrderLedger = order_ledger,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.inventory = inventory
        self.orders = orders

    def confirm(self, event: ConfirmationEvent) -> ConfirmationResult:
        key = event.dedup_key
        logger.debug(f"{key}: {ConfirmationState.RECEIVED.value}")

        session: Session = self.session_factory()
        try:
            with session.begin():
                result = self._apply(session, event)
        except DuplicateKeyError:
            # Lost an insert race; the rollback already undid our decrement
            result = ConfirmationResult(ConfirmationState.REJECTED_DUPLICATE)
        except PersistenceError:
            logger.error(f"{key}: unit of work rolled back")
            raise
        except SQLAlchemyError as e:
            logger.error(f"{key}: commit failed, unit of work rolled back: {e}")
            raise PersistenceError(str(e)) from e
        finally:
            session.close()

        self._log_outcome(event, result)
        if result.applied:
            result = self._notify(event, result)
        return result

    def _seen_recently(self, session: Session, event: ConfirmationEvent) -> bool:
        if not event.fingerprint:
            return False
        now = event.received_at or datetime.now(timezone.utc)
        since = now - timedelta(seconds=event.dedup_window_seconds)
        return self.orders.exists_recent(session, event.fingerprint, since)

    def _apply(self, session: Session, event: ConfirmationEvent) -> ConfirmationResult:
        if self.orders.exists(session, event.dedup_key) or self._seen_recently(session, event):
            return ConfirmationResult(ConfirmationState.REJECTED_DUPLICATE)
        logger.debug(f"{event.dedup_key}: {ConfirmationState.DEDUP_CHECKED.value}")

        product = self.inventory.get_by_name(session, event.product_name)
        if product is None:
            return ConfirmationResult(ConfirmationState.REJECTED_UNKNOWN_PRODUCT)

        # Unsigned channel: only accept the catalog price
        if event.method is PaymentMethod.WALLET and event.amount != product.price:
            return ConfirmationResult(ConfirmationState.REJECTED_PRICE_MISMATCH)

        if not self.inventory.try_decrement(session, product.name).ok:
            return ConfirmationResult(ConfirmationState.REJECTED_OUT_OF_STOCK)

        # Again under the product row lock: on postgres a concurrent replay may have committed
        if self._seen_recently(session, event):
            raise DuplicateKeyError(event.dedup_key)

        order_id = self.orders.insert(
            session,
            obj_in={
                "amount": event.amount,
                "description": event.product_name,
                "method": event.method.value,
                "name": event.buyer_name,
                "address": event.buyer_address,
                "phone": event.buyer_phone,
                "dedup_key": event.dedup_key,
                "fingerprint": event.fingerprint,
                "created_at": event.received_at,
            },
        )
        return ConfirmationResult(ConfirmationState.APPLIED, order_id=order_id)

    def _log_outcome(self, event: ConfirmationEvent, result: ConfirmationResult) -> None:
        if result.applied:
            logger.info(
                f"💰 {event.method.value} payment applied: {event.dedup_key} -> order {result.order_id}"
            )
        elif result.duplicate:
            logger.info(f"Duplicate confirmation ignored: {event.dedup_key}")
        else:
            logger.warning(
                f"⚠️ {event.method.value} confirmation rejected ({result.reason}): "
                f"{event.dedup_key} product={event.product_name!r} amount={event.amount}"
            )

    def _notify(self, event: ConfirmationEvent, result: ConfirmationResult) -> ConfirmationResult:
        if self.notifier is None:
            return result
        subject = f"🎉 Payment completed: {event.product_name}"
        body = (
            f"Order: {result.order_id}\n"
            f"Amount: {event.amount}\n"
            f"Description: {event.product_name}\n"
            f"Method: {event.method.value}\n"
            f"Name: {event.buyer_name}\n"
            f"Address: {event.buyer_address}\n"
            f"Phone: {event.buyer_phone}\n"
        )
        try:
            self.notifier.notify(subject, body)
        except Exception as e:
            # The ledgers are committed; mail problems never surface to the caller
            logger.error(f"Notification dispatch failed for order {result.order_id}: {e}")
            return result
        logger.debug(f"{event.dedup_key}: NOTIFIED")
        return ConfirmationResult(result.state, order_id=result.order_id, notified=True)
