"""Ingredient ledger: on-hand quantities and their audit trail.

All on-hand changes are single guarded UPDATE statements
(``on_hand = on_hand + delta WHERE on_hand + delta >= 0``) so concurrent
writers cannot lose updates or drive a row negative. Each change writes an
InventoryAdjustment row in the same transaction.
"""

import logging
from decimal import Decimal
from typing import Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..exceptions import InsufficientStock, NotFoundError, Shortage, ValidationFailed
from ..models import Ingredient, InventoryAdjustment

logger = logging.getLogger("bakehouse.ledger")

ADJUSTMENT_TYPES = ("receive", "waste", "correction", "production")


def get_ingredient(db: Session, ingredient_id: str) -> Ingredient:
    ingredient = db.get(Ingredient, ingredient_id)
    if ingredient is None:
        raise NotFoundError("Ingredient", ingredient_id)
    return ingredient


def get_on_hand(db: Session, ingredient_id: str) -> Decimal:
    on_hand = db.scalar(select(Ingredient.on_hand).where(Ingredient.id == ingredient_id))
    if on_hand is None:
        raise NotFoundError("Ingredient", ingredient_id)
    return Decimal(on_hand)


def lock_ingredients(db: Session, ingredient_ids) -> dict[str, Ingredient]:
    """Load ingredients with FOR UPDATE, in id order to keep lock order stable."""
    ids = sorted(set(ingredient_ids))
    if not ids:
        return {}
    rows = db.scalars(
        select(Ingredient)
        .where(Ingredient.id.in_(ids))
        .order_by(Ingredient.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).all()
    return {row.id: row for row in rows}


def check_stock(
    db: Session, requirements: Mapping[str, Decimal], *, lock: bool = False
) -> list[Shortage]:
    """Compare required quantities against on-hand, returning every shortage.

    Raises NotFoundError if a required ingredient does not exist.
    """
    if lock:
        ingredients = lock_ingredients(db, requirements.keys())
    else:
        ingredients = {
            i.id: i
            for i in db.scalars(select(Ingredient).where(Ingredient.id.in_(list(requirements)))).all()
        }

    shortages = []
    for ingredient_id, required in sorted(requirements.items()):
        ingredient = ingredients.get(ingredient_id)
        if ingredient is None:
            raise NotFoundError("Ingredient", ingredient_id)
        on_hand = Decimal(ingredient.on_hand)
        if on_hand < required:
            shortages.append(Shortage(
                ingredient_id=ingredient_id,
                name=ingredient.name,
                unit=ingredient.unit,
                required=required,
                on_hand=on_hand,
            ))
    return shortages


def _apply_delta(
    db: Session,
    ingredient_id: str,
    delta: Decimal,
    *,
    adjustment_type: str,
    reason: Optional[str],
    actor: Optional[str],
    ref_type: Optional[str] = None,
    ref_id: Optional[str] = None,
) -> InventoryAdjustment:
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationFailed(f"Unknown adjustment type: {adjustment_type}")

    result = db.execute(
        update(Ingredient)
        .where(Ingredient.id == ingredient_id, Ingredient.on_hand + delta >= 0)
        .values(on_hand=Ingredient.on_hand + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        ingredient = get_ingredient(db, ingredient_id)
        on_hand = get_on_hand(db, ingredient_id)
        raise InsufficientStock([Shortage(
            ingredient_id=ingredient_id,
            name=ingredient.name,
            unit=ingredient.unit,
            required=-delta,
            on_hand=on_hand,
        )])

    new_quantity = get_on_hand(db, ingredient_id)
    # The UPDATE bypassed the identity map; drop any stale copy
    db.expire(db.get(Ingredient, ingredient_id), ["on_hand", "updated_at"])

    adjustment = InventoryAdjustment(
        ingredient_id=ingredient_id,
        adjustment_type=adjustment_type,
        quantity=delta,
        previous_quantity=new_quantity - delta,
        new_quantity=new_quantity,
        reason=reason,
        adjusted_by=actor,
        ref_type=ref_type,
        ref_id=ref_id,
    )
    db.add(adjustment)
    return adjustment


def deduct(
    db: Session,
    ingredient_id: str,
    quantity: Decimal,
    *,
    reason: Optional[str] = None,
    actor: Optional[str] = None,
    ref_type: Optional[str] = None,
    ref_id: Optional[str] = None,
) -> InventoryAdjustment:
    """Subtract ``quantity`` from on-hand; rejected (never clamped) if it would go negative."""
    quantity = Decimal(quantity)
    if quantity < 0:
        raise ValidationFailed("Deduction quantity must be >= 0")
    return _apply_delta(
        db, ingredient_id, -quantity,
        adjustment_type="production", reason=reason, actor=actor,
        ref_type=ref_type, ref_id=ref_id,
    )


def deduct_many(
    db: Session,
    deductions: Mapping[str, Decimal],
    *,
    reason: Optional[str] = None,
    actor: Optional[str] = None,
    ref_type: Optional[str] = None,
    ref_id: Optional[str] = None,
) -> list[InventoryAdjustment]:
    """Apply several deductions as one unit.

    Every row is locked and checked before the first UPDATE runs; if anything
    is short the whole set is rejected with all shortages listed. The updates
    share the caller's transaction, so a failure part-way (a racing writer on a
    database without row locks) leaves nothing behind once the caller rolls back.
    """
    shortages = check_stock(db, deductions, lock=True)
    if shortages:
        raise InsufficientStock(shortages)

    adjustments = [
        deduct(db, ingredient_id, quantity, reason=reason, actor=actor, ref_type=ref_type, ref_id=ref_id)
        for ingredient_id, quantity in sorted(deductions.items())
    ]
    db.flush()
    return adjustments


def adjust(
    db: Session,
    ingredient_id: str,
    delta: Decimal,
    adjustment_type: str,
    *,
    reason: Optional[str] = None,
    actor: Optional[str] = None,
) -> InventoryAdjustment:
    """Manual receive/waste/correction; the result may not go below zero."""
    get_ingredient(db, ingredient_id)
    adjustment = _apply_delta(
        db, ingredient_id, Decimal(delta),
        adjustment_type=adjustment_type, reason=reason, actor=actor, ref_type="manual",
    )
    db.flush()
    logger.info(f"Ingredient {ingredient_id} adjusted by {delta} ({adjustment_type})")
    return adjustment


def set_on_hand(
    db: Session,
    ingredient_id: str,
    new_quantity: Decimal,
    *,
    reason: Optional[str] = None,
    actor: Optional[str] = None,
) -> Optional[InventoryAdjustment]:
    """Overwrite on-hand from an edit form, recorded as a correction.

    Returns None when the value did not change.
    """
    new_quantity = Decimal(new_quantity)
    if new_quantity < 0:
        raise ValidationFailed("On-hand quantity must be >= 0")
    current = lock_ingredients(db, [ingredient_id]).get(ingredient_id)
    if current is None:
        raise NotFoundError("Ingredient", ingredient_id)
    delta = new_quantity - Decimal(current.on_hand)
    if delta == 0:
        return None
    return adjust(db, ingredient_id, delta, "correction", reason=reason or "Manual edit", actor=actor)


def list_adjustments(db: Session, ingredient_id: Optional[str] = None, limit: int = 200) -> list[InventoryAdjustment]:
    stmt = select(InventoryAdjustment)
    if ingredient_id:
        stmt = stmt.where(InventoryAdjustment.ingredient_id == ingredient_id)
    stmt = stmt.order_by(InventoryAdjustment.created_at.desc()).limit(limit)
    return list(db.scalars(stmt).all())


def low_stock(db: Session) -> list[Ingredient]:
    return list(db.scalars(
        select(Ingredient)
        .where(Ingredient.on_hand <= Ingredient.reorder_threshold)
        .order_by(Ingredient.name)
    ).all())
