"""
Inbound payment confirmation verification.

Two channels, two trust levels:
- CARD: Stripe webhook, HMAC signature over the raw body (verified before parsing)
- WALLET: direct call, no signature; structural validation only. The
  coordinator adds a catalog price check for these events.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
import hashlib
import json
import logging
import time
from typing import Callable, Dict, Optional

import stripe
from pydantic import ValidationError

from paystock.exceptions import InvalidSignature, MalformedPayload
from paystock.models import PaymentMethod
from paystock.payments.events import ConfirmationEvent
from paystock.schemas import StripeEventPayload, StripePaymentIntent, WalletPaymentPayload

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"


class EventVerifier(ABC):
    channel: PaymentMethod

    @abstractmethod
    def verify(self, raw_payload: bytes, signature_material: Optional[str] = None) -> Optional[ConfirmationEvent]:
        """
        Return the confirmation carried by raw_payload, or None when the
        payload is authentic but does not confirm a payment.
        Raises InvalidSignature or MalformedPayload.
        """


def _parse_json(raw_payload: bytes) -> object:
    try:
        return json.loads(raw_payload)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedPayload(f"Body is not valid JSON: {e}") from e


class StripeWebhookVerifier(EventVerifier):
    channel = PaymentMethod.CARD

    def __init__(self, webhook_secret: str, tolerance: int = 300):
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def verify(self, raw_payload: bytes, signature_material: Optional[str] = None) -> Optional[ConfirmationEvent]:
        if not signature_material:
            raise InvalidSignature("Missing Stripe-Signature header")
        if not self.webhook_secret:
            # Nothing can be authenticated without a secret
            raise InvalidSignature("Webhook secret is not configured")

        try:
            payload = raw_payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidSignature("Payload is not UTF-8") from e

        try:
            stripe.WebhookSignature.verify_header(
                payload, signature_material, self.webhook_secret, self.tolerance
            )
        except (stripe.SignatureVerificationError, ValueError) as e:
            raise InvalidSignature(str(e)) from e

        try:
            event = StripeEventPayload.model_validate(_parse_json(raw_payload))
        except ValidationError as e:
            raise MalformedPayload(f"Not a Stripe event: {e}") from e

        if event.type != PAYMENT_SUCCEEDED:
            logger.info(f"Ignoring Stripe event {event.id} of type {event.type}")
            return None

        try:
            intent = StripePaymentIntent.model_validate(event.data.object)
        except ValidationError as e:
            raise MalformedPayload(f"Invalid payment intent in event {event.id}: {e}") from e

        metadata = intent.metadata
        return ConfirmationEvent(
            amount=intent.amount,
            product_name=intent.description,
            method=PaymentMethod.CARD,
            dedup_key=f"card:{intent.id}",
            buyer_name=metadata.get("name") or "",
            buyer_address=metadata.get("address") or "",
            buyer_phone=metadata.get("phone") or "",
        )


class WalletVerifier(EventVerifier):
    channel = PaymentMethod.WALLET

    def __init__(self, dedup_window_seconds: int = 300, clock: Callable[[], float] = time.time):
        self.dedup_window_seconds = dedup_window_seconds
        self.clock = clock

    @staticmethod
    def fingerprint(payload: WalletPaymentPayload) -> str:
        parts = [
            str(payload.amount),
            payload.description,
            payload.name or "",
            payload.address or "",
            payload.phone or "",
        ]
        return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()

    def derive_key(self, payload: WalletPaymentPayload, now: float) -> str:
        """
        Fallback de-duplication key when the caller sends no token. The bucket
        only keeps keys unique per order; replays across a bucket edge are
        caught by the coordinator's fingerprint window check.
        """
        bucket = int(now // self.dedup_window_seconds)
        return f"wallet-derived:{self.fingerprint(payload)}:{bucket}"

    def verify(self, raw_payload: bytes, signature_material: Optional[str] = None) -> Optional[ConfirmationEvent]:
        data = _parse_json(raw_payload)
        if signature_material and isinstance(data, dict):
            # Idempotency-Key header wins over the body field, same length rules
            data = {**data, "idempotency_key": signature_material}
        try:
            payload = WalletPaymentPayload.model_validate(data)
        except ValidationError as e:
            raise MalformedPayload(f"Invalid wallet payment: {e}") from e

        now = self.clock()
        fingerprint = None
        if payload.idempotency_key:
            dedup_key = f"wallet:{payload.idempotency_key}"
        else:
            dedup_key = self.derive_key(payload, now)
            fingerprint = self.fingerprint(payload)

        return ConfirmationEvent(
            amount=payload.amount,
            product_name=payload.description,
            method=PaymentMethod.WALLET,
            dedup_key=dedup_key,
            buyer_name=payload.name or "",
            buyer_address=payload.address or "",
            buyer_phone=payload.phone or "",
            fingerprint=fingerprint,
            dedup_window_seconds=self.dedup_window_seconds,
            received_at=datetime.fromtimestamp(now, tz=timezone.utc),
        )


class ChannelVerifier:
    """Dispatches verification to the verifier registered for a channel."""

    def __init__(self, *verifiers: EventVerifier):
        self._verifiers: Dict[PaymentMethod, EventVerifier] = {v.channel: v for v in verifiers}

    def verify(
        self,
        channel: PaymentMethod,
        raw_payload: bytes,
        signature_material: Optional[str] = None,
    ) -> Optional[ConfirmationEvent]:
        verifier = self._verifiers.get(channel)
        if verifier is None:
            raise KeyError(f"No verifier registered for channel {channel}")
        try:
            return verifier.verify(raw_payload, signature_material)
        except (InvalidSignature, MalformedPayload) as e:
            logger.warning(f"{channel.value} confirmation rejected: {type(e).__name__}: {e}")
            raise
