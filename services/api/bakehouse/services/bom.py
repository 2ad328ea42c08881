"""Bill-of-materials lookups and maintenance."""

from decimal import Decimal
from typing import Iterable, NamedTuple

from sqlalchemy import select, delete
from sqlalchemy.orm import Session, selectinload

from ..exceptions import NotFoundError, ValidationFailed
from ..models import BillOfMaterial, Ingredient, Product


class Requirement(NamedTuple):
    ingredient_id: str
    quantity_per_unit: Decimal


def get_requirements_for_product(db: Session, product_id: str) -> list[Requirement]:
    """Ingredients consumed by one unit of ``product_id``.

    A product without BOM rows yields an empty list (it costs no ingredients).
    """
    rows = db.execute(
        select(BillOfMaterial.ingredient_id, BillOfMaterial.quantity)
        .where(BillOfMaterial.product_id == product_id)
        .order_by(BillOfMaterial.ingredient_id)
    ).all()
    return [Requirement(ingredient_id, Decimal(quantity)) for ingredient_id, quantity in rows]


def get_bom(db: Session, product_id: str) -> list[BillOfMaterial]:
    """BOM rows with their ingredients loaded; NotFoundError for unknown products."""
    if db.get(Product, product_id) is None:
        raise NotFoundError("Product", product_id)
    return list(db.scalars(
        select(BillOfMaterial)
        .where(BillOfMaterial.product_id == product_id)
        .options(selectinload(BillOfMaterial.ingredient))
    ).all())


def replace_bom(
    db: Session, product_id: str, entries: Iterable[tuple[str, Decimal]]
) -> list[BillOfMaterial]:
    """Swap the product's BOM for ``entries``.

    Repeated ingredients collapse with the last entry winning, so the
    product/ingredient pair stays unique. Flushes; the caller commits.
    """
    if db.get(Product, product_id) is None:
        raise NotFoundError("Product", product_id)

    collapsed: dict[str, Decimal] = {}
    for ingredient_id, quantity in entries:
        quantity = Decimal(quantity)
        if quantity < 0:
            raise ValidationFailed(f"BOM quantity must be >= 0 (ingredient {ingredient_id})")
        collapsed.pop(ingredient_id, None)
        collapsed[ingredient_id] = quantity

    if collapsed:
        known = set(
            db.scalars(select(Ingredient.id).where(Ingredient.id.in_(collapsed.keys()))).all()
        )
        missing = [i for i in collapsed if i not in known]
        if missing:
            raise ValidationFailed(f"Ingredient not found: {', '.join(missing)}")

    db.execute(delete(BillOfMaterial).where(BillOfMaterial.product_id == product_id))
    rows = [
        BillOfMaterial(product_id=product_id, ingredient_id=ingredient_id, quantity=quantity)
        for ingredient_id, quantity in collapsed.items()
    ]
    db.add_all(rows)
    db.flush()
    return rows
