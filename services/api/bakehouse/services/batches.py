"""Production batches and the completion workflow.

Completing a batch turns its planned lines into ingredient deductions:

1. load and lock the batch; already completed means nothing to do
2. aggregate BOM requirements over the batch lines
3. lock the ingredient rows and reject the whole batch if any is short
4. deduct every ingredient (one audited adjustment each)
5. mark the batch completed, stock the freezer, log ``batch.completed``

Steps 3-5 run in one transaction; any failure rolls all of them back.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..exceptions import NotFoundError, ServiceError, ValidationFailed
from ..models import Batch, BatchItem, Ingredient, Product
from . import freezer, ingredient_ledger
from .activity import log_activity
from .batch_aggregate import aggregate_for_batch
from .transitions import BatchStatus, ensure_batch_transition, parse_batch_status

logger = logging.getLogger("bakehouse.batches")


def create_batch(
    db: Session,
    *,
    batch_date: datetime,
    shift: str,
    notes: Optional[str] = None,
    items: Iterable[tuple[str, int]] = (),
) -> Batch:
    """Create a planned batch. Lines with quantity 0 are dropped."""
    lines = [(product_id, quantity) for product_id, quantity in items if quantity > 0]
    if lines:
        product_ids = {product_id for product_id, _ in lines}
        known = set(db.scalars(select(Product.id).where(Product.id.in_(product_ids))).all())
        missing = sorted(product_ids - known)
        if missing:
            raise ValidationFailed(f"Product not found: {', '.join(missing)}")

    batch = Batch(batch_date=batch_date, shift=shift, notes=notes, status=BatchStatus.PLANNED.value)
    batch.items = [
        BatchItem(product_id=product_id, quantity=quantity, position=position)
        for position, (product_id, quantity) in enumerate(lines)
    ]
    db.add(batch)
    db.commit()
    db.refresh(batch)
    return batch


def get_batch(db: Session, batch_id: str, *, lock: bool = False) -> Batch:
    stmt = select(Batch).where(Batch.id == batch_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    batch = db.scalar(stmt)
    if batch is None:
        raise NotFoundError("Batch", batch_id)
    return batch


def list_batches(
    db: Session, *, status: Optional[str] = None, page: int = 1, limit: int = 50
) -> tuple[list[Batch], int]:
    stmt = select(Batch)
    count_stmt = select(func.count()).select_from(Batch)
    if status and status != "all":
        parse_batch_status(status)
        stmt = stmt.where(Batch.status == status)
        count_stmt = count_stmt.where(Batch.status == status)
    total = db.scalar(count_stmt) or 0
    rows = db.scalars(
        stmt.order_by(Batch.batch_date.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return list(rows), total


def batch_lines(db: Session, batch_id: str) -> list[tuple[str, int]]:
    rows = db.execute(
        select(BatchItem.product_id, BatchItem.quantity)
        .where(BatchItem.batch_id == batch_id)
        .order_by(BatchItem.position)
    ).all()
    return [(product_id, quantity) for product_id, quantity in rows]


def requirements_preview(db: Session, batch_id: str) -> list[dict]:
    """Required vs on-hand per ingredient, without touching anything."""
    batch = get_batch(db, batch_id)
    requirements = aggregate_for_batch(db, batch_lines(db, batch.id))
    if not requirements:
        return []
    ingredients = {
        i.id: i
        for i in db.scalars(select(Ingredient).where(Ingredient.id.in_(list(requirements)))).all()
    }
    preview = []
    for ingredient_id, required in requirements.items():
        ingredient = ingredients.get(ingredient_id)
        on_hand = Decimal(ingredient.on_hand) if ingredient else Decimal("0")
        preview.append({
            "ingredient_id": ingredient_id,
            "name": ingredient.name if ingredient else None,
            "unit": ingredient.unit if ingredient else None,
            "required": required,
            "on_hand": on_hand,
            "shortfall": max(Decimal("0"), required - on_hand),
            "sufficient": on_hand >= required,
        })
    return preview


def complete_batch(db: Session, batch_id: str, *, actor: Optional[str] = None) -> Batch:
    """Deduct the batch's ingredients and mark it completed.

    Calling it again on a completed batch returns the batch untouched.
    Raises InsufficientStock (listing every short ingredient) with no changes
    applied, IllegalTransition for cancelled batches, NotFoundError for
    unknown ids.
    """
    adjustments = []
    try:
        batch = get_batch(db, batch_id, lock=True)
        if not ensure_batch_transition(batch.status, BatchStatus.COMPLETED):
            logger.info(f"Batch {batch_id} already completed, skipping deduction")
            return batch

        lines = batch_lines(db, batch.id)
        requirements = aggregate_for_batch(db, lines)

        if requirements:
            adjustments = ingredient_ledger.deduct_many(
                db,
                requirements,
                reason=f"Batch {batch.id} completed",
                actor=actor,
                ref_type="batch",
                ref_id=batch.id,
            )

        batch.status = BatchStatus.COMPLETED.value
        batch.completed_at = datetime.now(timezone.utc)

        produced = [(product_id, quantity) for product_id, quantity in lines if quantity > 0]
        freezer.add_from_batch(db, batch.id, produced)

        log_activity(
            db,
            action="batch.completed",
            entity_type="batch",
            entity_id=batch.id,
            details={
                "items": [{"product_id": p, "quantity": q} for p, q in produced],
                "deductions": [
                    {"ingredient_id": a.ingredient_id, "quantity": -a.quantity} for a in adjustments
                ],
            },
            actor=actor,
        )
        db.commit()
    except ServiceError as e:
        db.rollback()
        logger.warning(f"Batch {batch_id} completion rejected: {e.message}")
        raise
    except Exception:
        db.rollback()
        logger.exception(f"Batch {batch_id} completion failed")
        raise

    db.refresh(batch)
    logger.info(f"Batch {batch_id} completed with {len(adjustments)} ingredient deductions")
    return batch


def update_batch_status(db: Session, batch_id: str, status: str, *, actor: Optional[str] = None) -> Batch:
    """Drive the batch state machine; ``completed`` runs ``complete_batch``."""
    target = parse_batch_status(status)
    if target == BatchStatus.COMPLETED:
        return complete_batch(db, batch_id, actor=actor)

    try:
        batch = get_batch(db, batch_id, lock=True)
        if not ensure_batch_transition(batch.status, target):
            return batch

        batch.status = target.value
        if target == BatchStatus.IN_PROGRESS:
            log_activity(db, action="batch.started", entity_type="batch", entity_id=batch.id,
                         details={"shift": batch.shift}, actor=actor)
        elif target == BatchStatus.CANCELLED:
            log_activity(db, action="batch.cancelled", entity_type="batch", entity_id=batch.id,
                         details={"shift": batch.shift}, actor=actor)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(batch)
    return batch
