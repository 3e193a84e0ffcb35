from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from paystock.models import PaymentMethod


@dataclass(frozen=True)
class ConfirmationEvent:
    """A verified claim that a payment succeeded. Consumed once by the coordinator."""

    amount: int
    product_name: str
    method: PaymentMethod
    dedup_key: str
    buyer_name: str = ""
    buyer_address: str = ""
    buyer_phone: str = ""
    # Tokenless wallet purchases: same fingerprint inside the window is a replay
    fingerprint: Optional[str] = None
    dedup_window_seconds: int = 0
    received_at: Optional[datetime] = None
