from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select, func
from sqlalchemy.orm import Session

from .. import models, schemas
from ..deps import get_actor, get_db
from ..services import ingredient_ledger
from ..services.activity import log_activity

router = APIRouter()

STARTER_PANTRY = [
    {"name": "Spelt Flour", "unit": "lb", "on_hand": Decimal("100"), "reorder_threshold": Decimal("20")},
    {"name": "Sea Salt", "unit": "lb", "on_hand": Decimal("10"), "reorder_threshold": Decimal("2")},
    {"name": "Olive Oil", "unit": "gallon", "on_hand": Decimal("5"), "reorder_threshold": Decimal("1")},
    {"name": "Honey", "unit": "gallon", "on_hand": Decimal("3"), "reorder_threshold": Decimal("0.5")},
    {"name": "Yeast", "unit": "lb", "on_hand": Decimal("2"), "reorder_threshold": Decimal("0.5")},
    {"name": "Sesame Seeds", "unit": "lb", "on_hand": Decimal("5"), "reorder_threshold": Decimal("1")},
    {"name": "Poppy Seeds", "unit": "lb", "on_hand": Decimal("3"), "reorder_threshold": Decimal("0.5")},
    {"name": "Everything Seasoning", "unit": "lb", "on_hand": Decimal("4"), "reorder_threshold": Decimal("1")},
    {"name": "Cornmeal", "unit": "lb", "on_hand": Decimal("10"), "reorder_threshold": Decimal("2")},
    {"name": "Bagel Bags", "unit": "count", "on_hand": Decimal("500"), "reorder_threshold": Decimal("100")},
]


@router.get("/ingredients", response_model=list[schemas.IngredientOut])
def list_ingredients(db: Session = Depends(get_db)):
    return db.scalars(select(models.Ingredient).order_by(models.Ingredient.name)).all()


@router.get("/ingredients/low-stock", response_model=list[schemas.IngredientOut])
def get_low_stock(db: Session = Depends(get_db)):
    """Ingredients at or below their reorder threshold."""
    return ingredient_ledger.low_stock(db)


@router.post("/ingredients", response_model=schemas.IngredientOut, status_code=status.HTTP_201_CREATED)
def create_ingredient(item_in: schemas.IngredientCreate, db: Session = Depends(get_db)):
    ingredient = models.Ingredient(**item_in.model_dump())
    db.add(ingredient)
    db.commit()
    db.refresh(ingredient)
    return ingredient


@router.post("/ingredients/seed", response_model=schemas.SeedResponse)
def seed_ingredients(db: Session = Depends(get_db)):
    """Stock an empty pantry with basic bakery ingredients."""
    existing = db.scalar(select(func.count()).select_from(models.Ingredient))
    if existing:
        raise HTTPException(
            status_code=400,
            detail="Pantry already has ingredients. Seed only works on empty pantry.",
        )
    created = [models.Ingredient(**data) for data in STARTER_PANTRY]
    db.add_all(created)
    db.commit()
    for ingredient in created:
        db.refresh(ingredient)
    return {"message": "Pantry stocked with basic bakery ingredients", "ingredients": created}


@router.get("/ingredients/{ingredient_id}", response_model=schemas.IngredientOut)
def get_ingredient(ingredient_id: str, db: Session = Depends(get_db)):
    return ingredient_ledger.get_ingredient(db, ingredient_id)


@router.patch("/ingredients/{ingredient_id}", response_model=schemas.IngredientOut)
def update_ingredient(
    ingredient_id: str,
    item_in: schemas.IngredientUpdate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    """Edit an ingredient. A changed on-hand value is recorded as a correction."""
    ingredient = ingredient_ledger.get_ingredient(db, ingredient_id)
    update_data = item_in.model_dump(exclude_unset=True)
    new_on_hand = update_data.pop("on_hand", None)

    # Quantity first: the ledger reloads the row under lock
    if new_on_hand is not None:
        adjustment = ingredient_ledger.set_on_hand(db, ingredient_id, new_on_hand, actor=actor)
        if adjustment is not None:
            log_activity(
                db,
                action="ingredient.adjusted",
                entity_type="ingredient",
                entity_id=ingredient_id,
                details={"type": "correction", "quantity": adjustment.quantity},
                actor=actor,
            )

    for field, value in update_data.items():
        setattr(ingredient, field, value)

    db.commit()
    db.refresh(ingredient)
    return ingredient


@router.post("/ingredients/{ingredient_id}/adjust", response_model=schemas.InventoryAdjustmentOut)
def adjust_ingredient(
    ingredient_id: str,
    body: schemas.InventoryAdjustRequest,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    """Receive, waste or correct stock by a signed quantity."""
    adjustment = ingredient_ledger.adjust(
        db, ingredient_id, body.quantity, body.type, reason=body.reason, actor=actor
    )
    log_activity(
        db,
        action="ingredient.adjusted",
        entity_type="ingredient",
        entity_id=ingredient_id,
        details={"type": body.type, "quantity": body.quantity, "reason": body.reason},
        actor=actor,
    )
    db.commit()
    db.refresh(adjustment)
    return adjustment


@router.get("/inventory-adjustments", response_model=list[schemas.InventoryAdjustmentOut])
def list_inventory_adjustments(
    ingredient_id: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    return ingredient_ledger.list_adjustments(db, ingredient_id, limit=limit)
