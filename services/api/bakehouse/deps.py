"""FastAPI dependencies for the bakehouse API.

Provides:
- Database session dependency (re-exported from db)
- Actor resolution for audit rows (X-Actor header -> settings.default_actor)
- Payment gateway
"""

from typing import Optional

from fastapi import Header

from .db import get_db
from .services.payments import PaymentGateway, get_payment_gateway
from .settings import settings

__all__ = ["get_db", "get_actor", "get_gateway"]


def get_actor(x_actor: Optional[str] = Header(None, alias="X-Actor")) -> str:
    """Name recorded on adjustments and activity entries."""
    actor = (x_actor or "").strip()
    return actor[:100] if actor else settings.default_actor


def get_gateway() -> PaymentGateway:
    return get_payment_gateway()
