import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import get_db, ping
from ..infra.redis_client import get_redis

router = APIRouter()
logger = logging.getLogger("bakehouse.health")


@router.get("/health")
async def health(db: Session = Depends(get_db)):
    now = datetime.now(timezone.utc).isoformat()
    try:
        ping(db)
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "message": "Service unavailable", "timestamp": now},
        )

    redis_ok = False
    try:
        r = await get_redis()
        redis_ok = bool(await r.ping())
    except Exception as e:
        logger.warning(f"Redis ping failed: {e}")
    return {"status": "ok", "database": "connected", "redis_ok": redis_ok, "timestamp": now}
