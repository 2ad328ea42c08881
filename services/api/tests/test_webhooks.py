import hashlib
import hmac
import json
import time
from datetime import datetime, timezone

import pytest

from bakehouse.models import ActivityLog, Order
from bakehouse.services import orders as order_service
from bakehouse.services.payments import MockPaymentGateway
from bakehouse.settings import settings

WEBHOOK_SECRET = "whsec_test_secret"


class ConfirmLaterGateway(MockPaymentGateway):
    def authorize(self, amount_minor, currency, metadata):
        auth = super().authorize(amount_minor, currency, metadata)
        auth.status = "requires_payment_method"
        return auth


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", WEBHOOK_SECRET)
    return WEBHOOK_SECRET


@pytest.fixture
def place_order(db_session, make_product):
    bagel = make_product("Plain Bagel", price="2.00")

    def _place(gateway=None):
        order, _ = order_service.create_order(
            db_session,
            gateway or MockPaymentGateway(),
            customer={
                "customer_name": "Ada Baker",
                "customer_email": "ada@example.com",
                "delivery_address": "12 Mill Lane",
                "delivery_city": "Portland",
                "delivery_state": "OR",
                "delivery_zip": "97201",
            },
            fulfillment_date=datetime(2026, 3, 7, 9, tzinfo=timezone.utc),
            fulfillment_window="morning",
            items=[(bagel.id, 2)],
        )
        return order.id, order.stripe_payment_intent_id
    return _place


def signed_event(event_type, intent_id, secret=WEBHOOK_SECRET):
    """Event body and a Stripe-Signature header computed the way Stripe signs deliveries."""
    payload = json.dumps({
        "id": "evt_test",
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": intent_id, "object": "payment_intent"}},
    })
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return payload, {"Stripe-Signature": f"t={timestamp},v1={signature}", "Content-Type": "application/json"}


def deliver(client, event_type, intent_id, secret=WEBHOOK_SECRET):
    payload, headers = signed_event(event_type, intent_id, secret)
    return client.post("/api/webhooks/stripe", content=payload, headers=headers)


def load_order(db, order_id):
    db.expire_all()
    return db.get(Order, order_id)


def test_payment_failed_marks_order(client, db_session, webhook_secret, place_order):
    order_id, handle = place_order()

    resp = deliver(client, "payment_intent.payment_failed", handle)
    assert resp.status_code == 200
    assert resp.json() == {"received": True}

    order = load_order(db_session, order_id)
    assert order.stripe_payment_status == "failed"
    assert order.status == "new"


def test_processor_cancel_cancels_new_order(client, db_session, webhook_secret, place_order):
    order_id, handle = place_order()

    assert deliver(client, "payment_intent.canceled", handle).status_code == 200

    order = load_order(db_session, order_id)
    assert order.status == "cancelled"
    assert order.stripe_payment_status == "cancelled"
    entry = db_session.query(ActivityLog).filter_by(action="order.cancelled", entity_id=order_id).one()
    assert entry.actor == "stripe"


def test_processor_cancel_leaves_approved_order(client, db_session, gateway, webhook_secret, place_order):
    order_id, handle = place_order(gateway)
    order_service.update_order_status(db_session, gateway, order_id, "approved")

    assert deliver(client, "payment_intent.canceled", handle).status_code == 200

    order = load_order(db_session, order_id)
    assert order.status == "approved"
    assert order.stripe_payment_status == "captured"


def test_capturable_update_authorizes_pending(client, db_session, webhook_secret, place_order):
    order_id, handle = place_order(ConfirmLaterGateway())
    assert load_order(db_session, order_id).stripe_payment_status == "pending"

    assert deliver(client, "payment_intent.amount_capturable_updated", handle).status_code == 200
    assert load_order(db_session, order_id).stripe_payment_status == "authorized"


def test_captured_payment_not_downgraded(client, db_session, gateway, webhook_secret, place_order):
    order_id, handle = place_order(gateway)
    order_service.update_order_status(db_session, gateway, order_id, "approved")

    assert deliver(client, "payment_intent.payment_failed", handle).status_code == 200
    assert load_order(db_session, order_id).stripe_payment_status == "captured"


def test_unknown_intent_and_event_are_acknowledged(client, webhook_secret, place_order):
    _, handle = place_order()
    assert deliver(client, "payment_intent.payment_failed", "pi_unknown").status_code == 200
    assert deliver(client, "charge.refunded", handle).status_code == 200


def test_bad_signature_rejected(client, db_session, webhook_secret, place_order):
    order_id, handle = place_order()

    resp = deliver(client, "payment_intent.payment_failed", handle, secret="whsec_wrong")
    assert resp.status_code == 400
    assert load_order(db_session, order_id).stripe_payment_status == "authorized"


def test_without_secret_deliveries_are_ignored(client, db_session, monkeypatch, place_order):
    monkeypatch.setattr(settings, "stripe_webhook_secret", None)
    order_id, handle = place_order()

    resp = deliver(client, "payment_intent.payment_failed", handle)
    assert resp.status_code == 200
    assert load_order(db_session, order_id).stripe_payment_status == "authorized"
