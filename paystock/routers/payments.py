"""
Payment endpoints:
- /create-payment-intent: start a card payment with Stripe
- /webhook: card confirmations (Stripe signed webhook, raw body)
- /paypay-payment: wallet confirmations (unsigned, price-checked)
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
import logging
import stripe

from paystock.config import Settings
from paystock.dependencies import get_coordinator, get_settings, get_verifier
from paystock.exceptions import VerificationError, PersistenceError
from paystock.models import PaymentMethod
from paystock.payments.coordinator import ConfirmationState, PaymentConfirmationCoordinator
from paystock.payments.verifier import ChannelVerifier
from paystock.schemas import PaymentIntentCreate, PaymentIntentResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["payments"])

WALLET_REJECTION_STATUS = {
    ConfirmationState.REJECTED_OUT_OF_STOCK: (status.HTTP_409_CONFLICT, "Out of stock"),
    ConfirmationState.REJECTED_PRICE_MISMATCH: (422, "Amount does not match the catalog price"),
    ConfirmationState.REJECTED_UNKNOWN_PRODUCT: (status.HTTP_404_NOT_FOUND, "Unknown product"),
}


# -----------------------------
# Card payment authorization
# -----------------------------
@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
def create_payment_intent(payload: PaymentIntentCreate, settings: Settings = Depends(get_settings)):
    try:
        intent = stripe.PaymentIntent.create(
            api_key=settings.STRIPE_SECRET_KEY,
            amount=payload.amount,
            currency=settings.CURRENCY,
            description=payload.description,
            metadata={
                "name": payload.name or "",
                "address": payload.address or "",
                "phone": payload.phone or "",
            },
            automatic_payment_methods={"enabled": True},
        )
    except stripe.StripeError as e:
        logger.error(f"❌ PaymentIntent creation failed: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return {"clientSecret": intent.client_secret}


# -----------------------------
# Card confirmation (Stripe webhook)
# -----------------------------
@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    verifier: ChannelVerifier = Depends(get_verifier),
    coordinator: PaymentConfirmationCoordinator = Depends(get_coordinator),
):
    # Signature covers the exact bytes, so the body is never parsed before verification
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        event = verifier.verify(PaymentMethod.CARD, payload, signature)
    except VerificationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Webhook Error: {e}")

    if event is None:
        return {"received": True}

    try:
        result = await run_in_threadpool(coordinator.confirm, event)
    except PersistenceError:
        # Non-2xx makes Stripe redeliver; the dedup key keeps the retry safe
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not record payment"
        )

    if result.applied or result.duplicate:
        return {"received": True, "status": "success", "duplicate": result.duplicate}

    # Paid but not fulfillable; reconcile (refund) out of band rather than have Stripe retry
    return {"received": True, "status": "rejected", "reason": result.reason}


# -----------------------------
# Wallet confirmation (PayPay)
# -----------------------------
@router.post("/paypay-payment")
async def paypay_payment(
    request: Request,
    verifier: ChannelVerifier = Depends(get_verifier),
    coordinator: PaymentConfirmationCoordinator = Depends(get_coordinator),
):
    payload = await request.body()
    idempotency_key = request.headers.get("idempotency-key")

    try:
        event = verifier.verify(PaymentMethod.WALLET, payload, idempotency_key)
    except VerificationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        result = await run_in_threadpool(coordinator.confirm, event)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not record payment, retry with the same idempotency key"
        )

    if result.applied:
        return {"status": "success", "order_id": result.order_id}
    if result.duplicate:
        return {"status": "success", "duplicate": True}

    status_code, message = WALLET_REJECTION_STATUS[result.state]
    return JSONResponse(
        status_code=status_code,
        content={"status": "fail", "reason": result.reason, "message": message},
    )
