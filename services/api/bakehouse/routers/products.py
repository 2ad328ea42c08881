from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import models, schemas
from ..deps import get_db
from ..services import bom, products

public_router = APIRouter()
router = APIRouter()


@public_router.get("/products", response_model=list[schemas.ProductOut])
def list_active_products(db: Session = Depends(get_db)):
    """Products available for ordering."""
    return db.scalars(
        select(models.Product).where(models.Product.is_active.is_(True)).order_by(models.Product.name)
    ).all()


@router.get("/products", response_model=list[schemas.ProductOut])
def list_products(db: Session = Depends(get_db)):
    return db.scalars(select(models.Product).order_by(models.Product.name)).all()


@router.post("/products", response_model=schemas.ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(item_in: schemas.ProductCreate, db: Session = Depends(get_db)):
    """Create a product, optionally with its bill of materials."""
    data = item_in.model_dump(exclude={"bom"})
    product = models.Product(**data)
    db.add(product)
    db.flush()
    if item_in.bom:
        bom.replace_bom(db, product.id, [(e.ingredient_id, e.quantity) for e in item_in.bom])
    db.commit()
    db.refresh(product)
    return product


@router.get("/products/{product_id}", response_model=schemas.ProductOut)
def get_product(product_id: str, db: Session = Depends(get_db)):
    return products.get_product(db, product_id)


@router.patch("/products/{product_id}", response_model=schemas.ProductOut)
def update_product(product_id: str, item_in: schemas.ProductUpdate, db: Session = Depends(get_db)):
    product = products.get_product(db, product_id)
    for field, value in item_in.model_dump(exclude_unset=True).items():
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product


@router.delete("/products/{product_id}")
def delete_product(product_id: str, db: Session = Depends(get_db)):
    """Delete an unused product. Products with order or batch history get 409."""
    products.delete_product(db, product_id)
    db.commit()
    return {"success": True}


@router.get("/products/{product_id}/bom", response_model=list[schemas.BomEntryOut])
def get_product_bom(product_id: str, db: Session = Depends(get_db)):
    return bom.get_bom(db, product_id)


@router.put("/products/{product_id}/bom", response_model=list[schemas.BomEntryOut])
def replace_product_bom(product_id: str, entries: list[schemas.BomEntryIn], db: Session = Depends(get_db)):
    """Replace the whole BOM; a repeated ingredient keeps its last quantity."""
    bom.replace_bom(db, product_id, [(e.ingredient_id, e.quantity) for e in entries])
    db.commit()
    return bom.get_bom(db, product_id)
