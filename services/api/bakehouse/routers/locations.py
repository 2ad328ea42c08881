from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import models, schemas
from ..deps import get_db
from ..exceptions import NotFoundError

public_router = APIRouter()
router = APIRouter()


@public_router.get("/locations", response_model=list[schemas.LocationOut])
def list_active_locations(db: Session = Depends(get_db)):
    """Locations customers can pick when ordering."""
    return db.scalars(
        select(models.Location).where(models.Location.is_active.is_(True)).order_by(models.Location.name)
    ).all()


@router.get("/locations", response_model=list[schemas.LocationOut])
def list_locations(db: Session = Depends(get_db)):
    return db.scalars(select(models.Location).order_by(models.Location.name)).all()


@router.post("/locations", response_model=schemas.LocationOut, status_code=status.HTTP_201_CREATED)
def create_location(item_in: schemas.LocationCreate, db: Session = Depends(get_db)):
    location = models.Location(**item_in.model_dump())
    db.add(location)
    db.commit()
    db.refresh(location)
    return location


@router.patch("/locations/{location_id}", response_model=schemas.LocationOut)
def update_location(location_id: str, item_in: schemas.LocationUpdate, db: Session = Depends(get_db)):
    location = db.get(models.Location, location_id)
    if location is None:
        raise NotFoundError("Location", location_id)
    for field, value in item_in.model_dump(exclude_unset=True).items():
        setattr(location, field, value)
    db.commit()
    db.refresh(location)
    return location
