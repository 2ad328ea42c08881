"""Total ingredient requirements for a set of batch lines."""

from collections import defaultdict
from decimal import Decimal
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from .bom import Requirement, get_requirements_for_product

BomLookup = Callable[[str], list[Requirement]]


def aggregate_requirements(
    batch_items: Iterable[tuple[str, int]],
    bom_lookup: BomLookup,
) -> dict[str, Decimal]:
    """Sum ``quantity_per_unit * quantity`` per ingredient across all lines.

    Pure Decimal arithmetic; the result does not depend on line order.
    Ingredients whose total is zero are left out.
    """
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for product_id, quantity in batch_items:
        if quantity < 0:
            raise ValueError(f"Batch quantity must be >= 0, got {quantity} for {product_id}")
        if quantity == 0:
            continue
        for req in bom_lookup(product_id):
            totals[req.ingredient_id] += Decimal(req.quantity_per_unit) * Decimal(quantity)
    return {ingredient_id: qty for ingredient_id, qty in sorted(totals.items()) if qty != 0}


def aggregate_for_batch(
    db: Session,
    batch_items: Iterable[tuple[str, int]],
    cache: Optional[dict[str, list[Requirement]]] = None,
) -> dict[str, Decimal]:
    """``aggregate_requirements`` against the stored BOM, one query per product."""
    cache = {} if cache is None else cache

    def lookup(product_id: str) -> list[Requirement]:
        if product_id not in cache:
            cache[product_id] = get_requirements_for_product(db, product_id)
        return cache[product_id]

    return aggregate_requirements(batch_items, lookup)
