from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db
from ..services.stats import dashboard_stats

router = APIRouter()


@router.get("/stats/dashboard", response_model=schemas.DashboardStatsOut)
def get_dashboard_stats(db: Session = Depends(get_db)):
    return dashboard_stats(db)
