"""Admin dashboard counters."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models import Order
from .ingredient_ledger import low_stock
from .transitions import OrderStatus


def dashboard_stats(db: Session, now: Optional[datetime] = None) -> dict:
    """Today's order count and revenue, open orders, low-stock ingredients.

    "Today" starts at midnight UTC. Revenue counts today's orders that were
    approved and not cancelled.
    """
    now = now or datetime.now(timezone.utc)
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    today_orders = db.scalar(
        select(func.count()).select_from(Order).where(Order.created_at >= start_of_day)
    ) or 0
    pending_orders = db.scalar(
        select(func.count()).select_from(Order).where(Order.status == OrderStatus.NEW.value)
    ) or 0
    revenue = db.scalar(
        select(func.coalesce(func.sum(Order.total), 0)).where(
            Order.created_at >= start_of_day,
            Order.status.not_in([OrderStatus.NEW.value, OrderStatus.CANCELLED.value]),
        )
    )
    return {
        "today_orders": today_orders,
        "pending_orders": pending_orders,
        "today_revenue": Decimal(str(revenue or 0)).quantize(Decimal("0.01")),
        "low_stock_count": len(low_stock(db)),
    }
