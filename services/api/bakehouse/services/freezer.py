"""Finished-goods (freezer) stock."""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..exceptions import NotFoundError, ValidationFailed
from ..models import FreezerStock, Product


def add_from_batch(db: Session, batch_id: str, items: Iterable[tuple[str, int]]) -> list[FreezerStock]:
    """One stock row per produced line; zero-quantity lines are skipped."""
    rows = [
        FreezerStock(product_id=product_id, quantity=quantity, batch_id=batch_id)
        for product_id, quantity in items
        if quantity > 0
    ]
    db.add_all(rows)
    return rows


def create_stock(
    db: Session,
    *,
    product_id: str,
    quantity: int,
    batch_id: Optional[str] = None,
    notes: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> FreezerStock:
    if db.get(Product, product_id) is None:
        raise ValidationFailed(f"Product not found: {product_id}")
    stock = FreezerStock(
        product_id=product_id,
        quantity=quantity,
        batch_id=batch_id,
        notes=notes,
        expires_at=expires_at,
    )
    db.add(stock)
    db.flush()
    return stock


def update_quantity(db: Session, stock_id: str, quantity: int) -> FreezerStock:
    stock = db.get(FreezerStock, stock_id)
    if stock is None:
        raise NotFoundError("Freezer stock", stock_id)
    stock.quantity = quantity
    db.flush()
    return stock


def list_stock(db: Session, product_id: Optional[str] = None) -> list[FreezerStock]:
    stmt = select(FreezerStock)
    if product_id:
        stmt = stmt.where(FreezerStock.product_id == product_id)
    return list(db.scalars(stmt.order_by(FreezerStock.created_at.desc())).all())


def stock_stats(db: Session) -> dict:
    breakdown: dict[str, dict] = {}
    total = 0
    for stock in list_stock(db):
        entry = breakdown.setdefault(stock.product_id, {
            "product_id": stock.product_id,
            "product_name": stock.product.name if stock.product else "Unknown Product",
            "total_quantity": 0,
            "batches": 0,
        })
        entry["total_quantity"] += stock.quantity
        entry["batches"] += 1
        total += stock.quantity
    return {
        "total_items": total,
        "unique_products": len(breakdown),
        "product_breakdown": list(breakdown.values()),
    }
