from typing import Any, Optional
import json
import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import ActivityLog

logger = logging.getLogger("bakehouse.activity")

MAX_DETAILS_SIZE = 4096  # 4KB safety limit


def _json_default(value: Any):
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def log_activity(
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
    actor: Optional[str] = None,
) -> ActivityLog:
    """Add an activity feed entry to the current transaction.

    Args:
        db: Database session
        action: Dotted action name (batch.completed, order.approved, ...)
        entity_type: batch | order | ingredient | freezer_stock
        entity_id: Affected record
        details: JSON metadata. Decimals become strings; oversized payloads
            are replaced by a stub that keeps the original keys.
        actor: Who performed the action
    """
    safe_details: dict[str, Any] = {}
    try:
        json_str = json.dumps(details or {}, default=_json_default)
        if len(json_str) > MAX_DETAILS_SIZE:
            logger.warning(f"Activity details too large ({len(json_str)} bytes), truncating.")
            safe_details = {"_error": "payload_too_large", "_original_keys": list((details or {}).keys())}
        else:
            safe_details = json.loads(json_str)
    except TypeError as e:
        logger.error(f"Failed to serialize activity details: {e}")
        safe_details = {"_error": "serialization_failed"}

    entry = ActivityLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=safe_details,
        actor=actor,
    )
    db.add(entry)
    # Not committed here: the entry shares the caller's transaction
    return entry


def list_activity(
    db: Session,
    *,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 50,
) -> list[ActivityLog]:
    stmt = select(ActivityLog)
    if entity_type:
        stmt = stmt.where(ActivityLog.entity_type == entity_type)
    if entity_id:
        stmt = stmt.where(ActivityLog.entity_id == entity_id)
    stmt = stmt.order_by(ActivityLog.created_at.desc()).limit(limit)
    return list(db.scalars(stmt).all())
