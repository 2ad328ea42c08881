from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db
from ..services.activity import list_activity

router = APIRouter()


@router.get("/activity", response_model=list[schemas.ActivityLogOut])
def get_activity(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return list_activity(db, entity_type=entity_type, entity_id=entity_id, limit=limit)
