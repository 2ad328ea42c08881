from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_actor, get_db
from ..services import freezer
from ..services.activity import log_activity

router = APIRouter()


@router.get("/freezer", response_model=list[schemas.FreezerStockOut])
def list_freezer_stock(product_id: Optional[str] = None, db: Session = Depends(get_db)):
    return freezer.list_stock(db, product_id)


@router.get("/freezer/stats", response_model=schemas.FreezerStatsOut)
def get_freezer_stats(db: Session = Depends(get_db)):
    return freezer.stock_stats(db)


@router.post("/freezer", response_model=schemas.FreezerStockOut)
def create_freezer_stock(
    body: schemas.FreezerStockCreate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    stock = freezer.create_stock(db, **body.model_dump())
    log_activity(
        db,
        action="freezer.stocked",
        entity_type="freezer_stock",
        entity_id=stock.id,
        details={"product_id": stock.product_id, "quantity": stock.quantity},
        actor=actor,
    )
    db.commit()
    db.refresh(stock)
    return stock


@router.patch("/freezer/{stock_id}", response_model=schemas.FreezerStockOut)
def update_freezer_stock(stock_id: str, body: schemas.FreezerStockUpdate, db: Session = Depends(get_db)):
    stock = freezer.update_quantity(db, stock_id, body.quantity)
    db.commit()
    db.refresh(stock)
    return stock
