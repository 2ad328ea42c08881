from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_actor, get_db, get_gateway
from ..infra.idempotency import idempotency_clear_key, idempotency_precheck, idempotency_store_result
from ..services import orders as order_service
from ..services.payments import PaymentGateway
from ..settings import settings

# Storefront routes mount under /api, admin routes under /api/admin
public_router = APIRouter()
router = APIRouter()

limiter = Limiter(key_func=get_remote_address)

CUSTOMER_FIELDS = {"items", "fulfillment_date", "fulfillment_window"}


def _status_out(result: order_service.StatusChange) -> schemas.OrderStatusOut:
    return schemas.OrderStatusOut(
        order=schemas.OrderOut.model_validate(result.order),
        changed=result.changed,
        invoice_number=result.invoice.invoice_number if result.invoice else None,
        warnings=result.warnings,
    )


# --- Storefront ---

@public_router.post("/orders", response_model=schemas.OrderCreateOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit_orders)
async def create_order(
    request: Request,  # Required for rate limiter
    body: schemas.OrderCreate,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    """Submit an order and place an authorization hold for its subtotal.

    Send an ``Idempotency-Key`` header to make retries safe: a repeat with the
    same key and body replays the first response instead of placing a
    second hold.
    """
    pre = await idempotency_precheck(request, route_key="orders.create", required=False)
    if isinstance(pre, JSONResponse):
        return pre
    redis_key, req_hash = (pre[0], pre[1]) if pre else (None, None)

    try:
        order, authorization = order_service.create_order(
            db,
            gateway,
            customer=body.model_dump(exclude=CUSTOMER_FIELDS),
            fulfillment_date=body.fulfillment_date,
            fulfillment_window=body.fulfillment_window,
            items=[(i.product_id, i.quantity) for i in body.items],
        )
        resp = schemas.OrderCreateOut(
            order_id=order.id,
            payment_handle=authorization.handle,
            client_secret=authorization.client_secret,
        )
        if redis_key:
            await idempotency_store_result(redis_key, req_hash, status=201, body=resp.model_dump(mode="json"))
        return resp
    except Exception:
        await idempotency_clear_key(redis_key)
        raise


@public_router.get("/orders/{order_id}", response_model=schemas.PublicOrderOut)
def get_public_order(order_id: str, db: Session = Depends(get_db)):
    """Order status for the customer's confirmation page. No contact details."""
    order = order_service.get_order(db, order_id)
    return {
        "id": order.id,
        "status": order.status,
        "total": order.total,
        "fulfillment_date": order.fulfillment_date,
        "fulfillment_window": order.fulfillment_window,
        "delivery_address": order.delivery_address,
        "delivery_city": order.delivery_city,
        "delivery_state": order.delivery_state,
        "delivery_zip": order.delivery_zip,
        "items": [
            {"product_name": item.product.name, "quantity": item.quantity, "total": item.total}
            for item in order.items
        ],
    }


# --- Admin ---

@router.get("/orders", response_model=list[schemas.OrderOut])
def list_orders(status_filter: Optional[str] = Query(None, alias="status"), db: Session = Depends(get_db)):
    return order_service.list_orders(db, status=status_filter)


@router.get("/orders/{order_id}", response_model=schemas.OrderOut)
def get_order(order_id: str, db: Session = Depends(get_db)):
    return order_service.get_order(db, order_id)


@router.patch("/orders/{order_id}", response_model=schemas.OrderOut)
def update_order(order_id: str, body: schemas.OrderUpdate, db: Session = Depends(get_db)):
    return order_service.update_order(db, order_id, body.model_dump(exclude_unset=True))


@router.patch("/orders/{order_id}/status", response_model=schemas.OrderStatusOut)
def update_order_status(
    order_id: str,
    body: schemas.StatusUpdate,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    actor: str = Depends(get_actor),
):
    """Advance an order. Approving captures payment and issues the invoice;
    cancelling before capture releases the hold.
    """
    result = order_service.update_order_status(db, gateway, order_id, body.status, actor=actor)
    return _status_out(result)
