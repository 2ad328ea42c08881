import logging

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db
from ..services import orders as order_service
from ..settings import settings

router = APIRouter()
logger = logging.getLogger("bakehouse.webhooks")

PAYMENT_INTENT_EVENTS = (
    "payment_intent.amount_capturable_updated",
    "payment_intent.payment_failed",
    "payment_intent.canceled",
)


@router.post("/webhooks/stripe", response_model=schemas.WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header("", alias="Stripe-Signature"),
    db: Session = Depends(get_db),
):
    """Payment intent status updates pushed by Stripe.

    Deliveries are acknowledged without processing when no webhook secret is
    configured. A bad signature or payload gets 400 so Stripe retries it.
    """
    if not settings.stripe_webhook_secret:
        return {"received": True}

    payload = await request.body()
    try:
        event = stripe.Webhook.construct_event(payload, stripe_signature, settings.stripe_webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=400, detail=f"Webhook Error: {e}")

    event_type = event["type"]
    if event_type in PAYMENT_INTENT_EVENTS:
        order_service.apply_payment_event(db, event_type, event["data"]["object"]["id"])
    return {"received": True}
