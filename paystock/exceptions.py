"""
Error taxonomy for the payment confirmation path.
Duplicate deliveries and stock/price rejections are outcomes, not exceptions.
"""


class PaystockError(Exception):
    """Base class for service errors"""


class VerificationError(PaystockError):
    """Inbound confirmation rejected before reaching the ledgers"""


class InvalidSignature(VerificationError):
    pass


class MalformedPayload(VerificationError):
    pass


class DuplicateKeyError(PaystockError):
    """An order with this de-duplication key already exists"""

    def __init__(self, dedup_key: str):
        super().__init__(f"Order already recorded for key {dedup_key}")
        self.dedup_key = dedup_key


class PersistenceError(PaystockError):
    """Database failure or timeout; the unit of work was rolled back"""
