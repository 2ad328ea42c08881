"""Product lookups and deletion."""

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..exceptions import NotFoundError, ProductInUse
from ..models import BatchItem, FreezerStock, InvoiceItem, OrderItem, Product

logger = logging.getLogger("bakehouse.products")


def get_product(db: Session, product_id: str) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def product_dependencies(db: Session, product_id: str) -> dict[str, int]:
    counts = {}
    for label, model in (
        ("order items", OrderItem),
        ("invoice items", InvoiceItem),
        ("batch items", BatchItem),
        ("freezer stock rows", FreezerStock),
    ):
        counts[label] = db.scalar(
            select(func.count()).select_from(model).where(model.product_id == product_id)
        ) or 0
    return counts


def delete_product(db: Session, product_id: str) -> None:
    """Delete a product and its BOM.

    Products that orders, invoices, batches or freezer stock refer to are kept
    (ProductInUse); deactivate those instead.
    """
    product = get_product(db, product_id)
    dependencies = product_dependencies(db, product_id)
    if any(dependencies.values()):
        raise ProductInUse(product_id, dependencies)
    db.delete(product)
    db.flush()
    logger.info(f"Product {product_id} deleted")
