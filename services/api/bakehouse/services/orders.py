"""Orders: creation with an authorization hold, and the status workflow.

Status changes and payment are coupled like this:

- new -> approved: capture the hold first; if capture fails the order stays
  ``new`` and the processor's message goes back to the admin. After the
  approval is committed the ``order.approved`` handlers run (invoice).
- any status before capture -> cancelled: release the hold. A failed release
  is logged and reported as a warning, the cancellation still happens.
- approved -> baking -> ready -> completed: local only.
- cancelled after capture: local only, refunds happen outside the system.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..exceptions import NotFoundError, PaymentError, ValidationFailed
from ..models import Invoice, Order, OrderItem, Product
from ..settings import settings
from .activity import log_activity
from .invoices import get_invoice_for_order, issue_invoice_for_order
from .payments import PaymentAuthorization, PaymentGateway
from .transitions import (
    OrderStatus,
    PaymentStatus,
    ensure_order_transition,
    parse_order_status,
)

logger = logging.getLogger("bakehouse.orders")

CENT = Decimal("0.01")

ORDER_UPDATABLE_FIELDS = (
    "customer_name",
    "customer_email",
    "customer_phone",
    "delivery_address",
    "delivery_city",
    "delivery_state",
    "delivery_zip",
    "delivery_instructions",
    "notes",
)


@dataclass
class StatusChange:
    order: Order
    changed: bool
    invoice: Optional[Invoice] = None
    warnings: list[str] = field(default_factory=list)


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_order(db: Session, order_id: str, *, lock: bool = False) -> Order:
    stmt = select(Order).where(Order.id == order_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    order = db.scalar(stmt)
    if order is None:
        raise NotFoundError("Order", order_id)
    return order


def list_orders(db: Session, status: Optional[str] = None) -> list[Order]:
    stmt = select(Order)
    if status and status != "all":
        parse_order_status(status)
        stmt = stmt.where(Order.status == status)
    return list(db.scalars(stmt.order_by(Order.created_at.desc())).all())


def create_order(
    db: Session,
    gateway: PaymentGateway,
    *,
    customer: dict,
    fulfillment_date: datetime,
    fulfillment_window: Optional[str],
    items: Iterable[tuple[str, int]],
) -> tuple[Order, PaymentAuthorization]:
    """Price the cart from current product prices and place a payment hold.

    ``customer`` carries the contact and delivery fields. Every product must
    exist and be active, otherwise nothing is created and no hold is placed.
    """
    lines = list(items)
    if not lines:
        raise ValidationFailed("Order must contain at least one item")

    product_ids = {product_id for product_id, _ in lines}
    products = {
        p.id: p for p in db.scalars(select(Product).where(Product.id.in_(product_ids))).all()
    }

    subtotal = Decimal("0")
    order_items = []
    for position, (product_id, quantity) in enumerate(lines):
        product = products.get(product_id)
        if product is None or not product.is_active:
            raise ValidationFailed(f"Product not available: {product_id}")
        if quantity < 1:
            raise ValidationFailed(f"Quantity must be at least 1 for product {product_id}")
        unit_price = Decimal(product.price).quantize(CENT)
        line_total = (unit_price * quantity).quantize(CENT)
        subtotal += line_total
        order_items.append(OrderItem(
            product_id=product_id,
            quantity=quantity,
            unit_price=unit_price,
            total=line_total,
            position=position,
        ))

    authorization = gateway.authorize(
        to_minor_units(subtotal),
        settings.payment_currency,
        {"customer_name": customer["customer_name"], "customer_email": customer["customer_email"]},
    )
    payment_status = (
        PaymentStatus.AUTHORIZED if authorization.status == "requires_capture" else PaymentStatus.PENDING
    )

    try:
        order = Order(
            **customer,
            fulfillment_date=fulfillment_date,
            fulfillment_window=fulfillment_window,
            subtotal=subtotal,
            total=subtotal,
            status=OrderStatus.NEW.value,
            stripe_payment_intent_id=authorization.handle,
            stripe_payment_status=payment_status.value,
        )
        order.items = order_items
        db.add(order)
        db.flush()
        log_activity(
            db,
            action="order.created",
            entity_type="order",
            entity_id=order.id,
            details={"customer_name": order.customer_name, "total": subtotal},
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Order insert failed after authorization, releasing hold")
        try:
            gateway.cancel(authorization.handle)
        except PaymentError as e:
            logger.error(f"Could not release hold {authorization.handle}: {e.processor_message}")
        raise

    db.refresh(order)
    logger.info(f"Order {order.id} created, subtotal={subtotal}, payment={authorization.handle}")
    return order, authorization


def update_order(db: Session, order_id: str, changes: dict) -> Order:
    order = get_order(db, order_id)
    for name, value in changes.items():
        if name not in ORDER_UPDATABLE_FIELDS:
            raise ValidationFailed(f"Field cannot be updated: {name}")
        setattr(order, name, value)
    db.commit()
    db.refresh(order)
    return order


# --- Post-transition handlers ---

OrderHandler = Callable[[Session, Order, StatusChange], None]


def issue_invoice(db: Session, order: Order, result: StatusChange) -> None:
    invoice, created = issue_invoice_for_order(db, order)
    result.invoice = invoice
    if created:
        logger.info(f"Invoice {invoice.invoice_number} issued for order {order.id}")


ORDER_EVENT_HANDLERS: dict[str, list[OrderHandler]] = {
    "order.approved": [issue_invoice],
}


def dispatch_order_event(db: Session, event: str, order: Order, result: StatusChange) -> None:
    """Run the handlers for ``event``, each in its own transaction.

    The status change that produced the event is already committed; a failing
    handler is rolled back on its own and surfaces as a warning.
    """
    for handler in ORDER_EVENT_HANDLERS.get(event, []):
        try:
            handler(db, order, result)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"{event} handler {handler.__name__} failed for order {order.id}: {e}")
            result.warnings.append(f"{handler.__name__} failed: {e}")


# --- Status workflow ---

def _capture(db: Session, gateway: PaymentGateway, order: Order) -> None:
    if not order.stripe_payment_intent_id or order.stripe_payment_status == PaymentStatus.CAPTURED.value:
        return
    try:
        gateway.capture(order.stripe_payment_intent_id)
    except PaymentError as e:
        db.rollback()
        logger.warning(f"Capture failed for order {order.id}: {e.processor_message}")
        raise
    order.stripe_payment_status = PaymentStatus.CAPTURED.value


def _release_hold(gateway: PaymentGateway, order: Order, result: StatusChange) -> None:
    if not order.stripe_payment_intent_id or order.stripe_payment_status == PaymentStatus.CAPTURED.value:
        return
    try:
        gateway.cancel(order.stripe_payment_intent_id)
    except PaymentError as e:
        # The local cancellation stands; the processor side is reconciled later
        logger.error(f"Payment cancel failed for order {order.id}: {e.processor_message}")
        result.warnings.append(f"Payment hold was not released: {e.processor_message}")
    order.stripe_payment_status = PaymentStatus.CANCELLED.value


def update_order_status(
    db: Session,
    gateway: PaymentGateway,
    order_id: str,
    status: str,
    *,
    actor: Optional[str] = None,
) -> StatusChange:
    target = parse_order_status(status)
    order = get_order(db, order_id, lock=True)
    previous = order.status
    result = StatusChange(order=order, changed=ensure_order_transition(order.status, target))

    if not result.changed:
        # Retried approval: payment is settled, only the invoice may be missing
        if target == OrderStatus.APPROVED:
            db.commit()
            result.invoice = get_invoice_for_order(db, order.id)
            if result.invoice is None:
                dispatch_order_event(db, "order.approved", order, result)
        return result

    if target == OrderStatus.APPROVED:
        _capture(db, gateway, order)
        order.status = target.value
        log_activity(
            db,
            action="order.approved",
            entity_type="order",
            entity_id=order.id,
            details={"customer_name": order.customer_name, "total": order.total},
            actor=actor,
        )
        db.commit()
        dispatch_order_event(db, "order.approved", order, result)
    elif target == OrderStatus.CANCELLED:
        _release_hold(gateway, order, result)
        order.status = target.value
        log_activity(
            db,
            action="order.cancelled",
            entity_type="order",
            entity_id=order.id,
            details={"previous_status": previous, "payment_status": order.stripe_payment_status},
            actor=actor,
        )
        db.commit()
    else:
        order.status = target.value
        log_activity(
            db,
            action="order.status_changed",
            entity_type="order",
            entity_id=order.id,
            details={"from": previous, "to": target.value},
            actor=actor,
        )
        db.commit()

    db.refresh(order)
    if result.invoice is None:
        result.invoice = get_invoice_for_order(db, order.id)
    logger.info(f"Order {order.id}: {previous} -> {order.status}")
    return result


# --- Processor notifications ---

def get_order_by_payment_handle(db: Session, handle: str, *, lock: bool = False) -> Optional[Order]:
    stmt = select(Order).where(Order.stripe_payment_intent_id == handle)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return db.scalar(stmt)


def apply_payment_event(db: Session, event_type: str, handle: str) -> Optional[Order]:
    """Reconcile an order with a payment intent status change reported by the processor.

    - ``payment_intent.amount_capturable_updated``: a pending hold is now authorized
    - ``payment_intent.payment_failed``: payment status becomes ``failed``
    - ``payment_intent.canceled``: a still-``new`` order is cancelled

    Captured payments are never downgraded. Returns the order, or None when no
    order carries ``handle`` or the event type is not handled.
    """
    order = get_order_by_payment_handle(db, handle, lock=True)
    if order is None:
        logger.info(f"{event_type} for unknown payment {handle}, ignoring")
        return None
    if order.stripe_payment_status == PaymentStatus.CAPTURED.value:
        return order

    if event_type == "payment_intent.amount_capturable_updated":
        if order.stripe_payment_status == PaymentStatus.PENDING.value:
            order.stripe_payment_status = PaymentStatus.AUTHORIZED.value
    elif event_type == "payment_intent.payment_failed":
        order.stripe_payment_status = PaymentStatus.FAILED.value
    elif event_type == "payment_intent.canceled":
        if order.status == OrderStatus.NEW.value:
            order.status = OrderStatus.CANCELLED.value
            order.stripe_payment_status = PaymentStatus.CANCELLED.value
            log_activity(
                db,
                action="order.cancelled",
                entity_type="order",
                entity_id=order.id,
                details={"previous_status": OrderStatus.NEW.value, "reason": "payment_intent.canceled"},
                actor="stripe",
            )
    else:
        return None

    db.commit()
    db.refresh(order)
    logger.info(f"Order {order.id} payment {handle}: {event_type} -> {order.stripe_payment_status}")
    return order
