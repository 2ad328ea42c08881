"""Invoice generation for approved orders."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..exceptions import NotFoundError, ValidationFailed
from ..models import Invoice, InvoiceItem, Order
from ..settings import settings

logger = logging.getLogger("bakehouse.invoices")

INVOICE_STATUSES = ("draft", "sent", "paid", "cancelled")
NUMBER_ATTEMPTS = 3


def next_invoice_number(db: Session, now: Optional[datetime] = None) -> str:
    """INV-<year>-<seq>, continuing from the highest number issued this year."""
    year = (now or datetime.now(timezone.utc)).year
    prefix = f"{settings.invoice_prefix}-{year}-"
    latest = db.scalar(
        select(Invoice.invoice_number)
        .where(Invoice.invoice_number.like(f"{prefix}%"))
        # Longer numbers sort after shorter ones once the sequence passes 9999
        .order_by(func.length(Invoice.invoice_number).desc(), Invoice.invoice_number.desc())
        .limit(1)
    )
    last_seq = 0
    if latest:
        try:
            last_seq = int(latest[len(prefix):])
        except ValueError:
            logger.warning(f"Unparseable invoice number {latest!r}, restarting sequence")
    return f"{prefix}{last_seq + 1:04d}"


def get_invoice_for_order(db: Session, order_id: str) -> Optional[Invoice]:
    return db.scalar(select(Invoice).where(Invoice.order_id == order_id))


def create_invoice_for_order(db: Session, order: Order) -> tuple[Invoice, bool]:
    """Create the order's invoice unless one exists.

    Returns (invoice, created). Flushes; the caller commits.
    """
    existing = get_invoice_for_order(db, order.id)
    if existing is not None:
        return existing, False

    invoice = Invoice(
        invoice_number=next_invoice_number(db),
        order_id=order.id,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        customer_phone=order.customer_phone,
        delivery_address=order.delivery_address,
        delivery_city=order.delivery_city,
        delivery_state=order.delivery_state,
        delivery_zip=order.delivery_zip,
        subtotal=order.subtotal,
        tax=Decimal("0"),
        total=order.total,
        status="sent",
    )
    invoice.items = [
        InvoiceItem(
            product_id=item.product_id,
            product_name=item.product.name if item.product else item.product_id,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total=item.total,
            position=item.position,
        )
        for item in order.items
    ]
    db.add(invoice)
    db.flush()
    return invoice, True


def issue_invoice_for_order(db: Session, order: Order) -> tuple[Invoice, bool]:
    """Create and commit the order's invoice.

    Two approvals running at once can pick the same next number; the loser hits
    the unique constraint, rolls back and takes the next number.
    """
    order_id = order.id
    for attempt in range(1, NUMBER_ATTEMPTS + 1):
        try:
            invoice, created = create_invoice_for_order(db, order)
            db.commit()
            return invoice, created
        except IntegrityError:
            db.rollback()
            if attempt == NUMBER_ATTEMPTS:
                raise
            logger.warning(f"Invoice number taken for order {order_id}, retrying ({attempt}/{NUMBER_ATTEMPTS})")


def list_invoices(db: Session) -> list[Invoice]:
    return list(db.scalars(select(Invoice).order_by(Invoice.created_at.desc())).all())


def get_invoice(db: Session, invoice_id: str) -> Invoice:
    invoice = db.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError("Invoice", invoice_id)
    return invoice


def update_invoice_status(db: Session, invoice_id: str, status: str) -> Invoice:
    if status not in INVOICE_STATUSES:
        raise ValidationFailed(f"Unknown invoice status: {status}")
    invoice = get_invoice(db, invoice_id)
    invoice.status = status
    if status == "paid":
        invoice.paid_at = datetime.now(timezone.utc)
    db.flush()
    return invoice
