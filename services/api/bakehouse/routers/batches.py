"""Production batch endpoints."""

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_actor, get_db
from ..services import batches as batch_service

router = APIRouter()


@router.get("/batches", response_model=schemas.BatchListOut)
def list_batches(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    rows, total = batch_service.list_batches(db, status=status_filter, page=page, limit=limit)
    return {
        "batches": rows,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        },
    }


@router.post("/batches", response_model=schemas.BatchOut, status_code=status.HTTP_201_CREATED)
def create_batch(body: schemas.BatchCreate, db: Session = Depends(get_db)):
    return batch_service.create_batch(
        db,
        batch_date=body.batch_date,
        shift=body.shift,
        notes=body.notes,
        items=[(i.product_id, i.quantity) for i in body.items],
    )


@router.get("/batches/{batch_id}", response_model=schemas.BatchOut)
def get_batch(batch_id: str, db: Session = Depends(get_db)):
    return batch_service.get_batch(db, batch_id)


@router.get("/batches/{batch_id}/requirements", response_model=list[schemas.RequirementOut])
def get_batch_requirements(batch_id: str, db: Session = Depends(get_db)):
    """What completing the batch would consume, against current stock."""
    return batch_service.requirements_preview(db, batch_id)


@router.patch("/batches/{batch_id}/status", response_model=schemas.BatchOut)
def update_batch_status(
    batch_id: str,
    body: schemas.StatusUpdate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    """Move a batch through planned -> in_progress -> completed (or cancelled).

    Completing deducts ingredients; a short ingredient rejects the request
    with 409 and leaves everything as it was.
    """
    return batch_service.update_batch_status(db, batch_id, body.status, actor=actor)
