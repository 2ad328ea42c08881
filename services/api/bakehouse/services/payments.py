"""Payment processor gateways.

The order workflow only needs three calls: place an authorization hold,
capture it, or release it. ``payment_mode`` picks the implementation:

- ``stripe``: PaymentIntents with manual capture
- ``mock``: in-memory intents for local development and tests
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import stripe

from ..exceptions import PaymentError
from ..settings import settings

logger = logging.getLogger("bakehouse.payments")


@dataclass
class PaymentAuthorization:
    handle: str
    status: str  # processor status, e.g. requires_payment_method, requires_capture
    client_secret: Optional[str] = None


class PaymentGateway:
    """Authorize / capture / cancel contract used by the order workflow.

    Failures raise PaymentError with a message safe to show an admin.
    """

    name = "base"

    def authorize(self, amount_minor: int, currency: str, metadata: dict[str, str]) -> PaymentAuthorization:
        raise NotImplementedError

    def capture(self, handle: str) -> None:
        raise NotImplementedError

    def cancel(self, handle: str) -> None:
        raise NotImplementedError


class StripePaymentGateway(PaymentGateway):
    name = "stripe"

    def __init__(self, api_key: str, timeout: float):
        self.api_key = api_key
        # Payment calls are never retried automatically: a retried capture
        # without an idempotency key could double-charge
        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    def authorize(self, amount_minor: int, currency: str, metadata: dict[str, str]) -> PaymentAuthorization:
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.api_key,
                amount=amount_minor,
                currency=currency,
                capture_method="manual",
                metadata=metadata,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe authorize failed: {e.user_message or e.code}")
            raise PaymentError("Failed to authorize payment", e.user_message or str(e.code or "stripe_error"))
        return PaymentAuthorization(handle=intent.id, status=intent.status, client_secret=intent.client_secret)

    def capture(self, handle: str) -> None:
        try:
            stripe.PaymentIntent.capture(handle, api_key=self.api_key)
        except stripe.StripeError as e:
            # A second capture of a captured intent is rejected by Stripe;
            # the money is already ours, so that counts as success
            if self._status(handle) == "succeeded":
                logger.info(f"Payment {handle} already captured")
                return
            logger.error(f"Stripe capture failed for {handle}: {e.user_message or e.code}")
            raise PaymentError("Failed to capture payment", e.user_message or str(e.code or "stripe_error"))

    def cancel(self, handle: str) -> None:
        try:
            stripe.PaymentIntent.cancel(handle, api_key=self.api_key)
        except stripe.StripeError as e:
            if self._status(handle) == "canceled":
                return
            raise PaymentError("Failed to cancel payment", e.user_message or str(e.code or "stripe_error"))

    def _status(self, handle: str) -> Optional[str]:
        try:
            return stripe.PaymentIntent.retrieve(handle, api_key=self.api_key).status
        except stripe.StripeError:
            return None


class MockPaymentGateway(PaymentGateway):
    """In-memory processor with Stripe-like intent statuses."""

    name = "mock"

    def __init__(self):
        self.intents: dict[str, dict] = {}

    def authorize(self, amount_minor: int, currency: str, metadata: dict[str, str]) -> PaymentAuthorization:
        if amount_minor <= 0:
            raise PaymentError("Failed to authorize payment", "Amount must be positive")
        handle = f"pi_mock_{uuid.uuid4().hex[:16]}"
        self.intents[handle] = {
            "amount": amount_minor,
            "currency": currency,
            "metadata": dict(metadata),
            "status": "requires_capture",
        }
        return PaymentAuthorization(handle=handle, status="requires_capture", client_secret=f"{handle}_secret")

    def capture(self, handle: str) -> None:
        intent = self.intents.get(handle)
        if intent is None:
            raise PaymentError("Failed to capture payment", f"No such payment intent: {handle}")
        if intent["status"] == "succeeded":
            return
        if intent["status"] != "requires_capture":
            raise PaymentError("Failed to capture payment", f"Payment intent is {intent['status']}")
        intent["status"] = "succeeded"

    def cancel(self, handle: str) -> None:
        intent = self.intents.get(handle)
        if intent is None:
            raise PaymentError("Failed to cancel payment", f"No such payment intent: {handle}")
        if intent["status"] == "succeeded":
            raise PaymentError("Failed to cancel payment", "Payment intent already captured")
        intent["status"] = "canceled"


_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """Process-wide gateway for the configured ``payment_mode``."""
    global _gateway
    if _gateway is None:
        if settings.payment_mode == "stripe":
            if not settings.stripe_secret_key:
                raise RuntimeError("STRIPE_SECRET_KEY must be set when PAYMENT_MODE=stripe")
            _gateway = StripePaymentGateway(settings.stripe_secret_key, settings.payment_timeout_sec)
        else:
            _gateway = MockPaymentGateway()
        logger.info(f"Payment gateway: {_gateway.name}")
    return _gateway
