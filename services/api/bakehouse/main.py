# Bakehouse API Main Entry Point
import logging
import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .exceptions import ServiceError
from .settings import settings
from .routers.activity import router as activity_router
from .routers.batches import router as batches_router
from .routers.freezer import router as freezer_router
from .routers.health import router as health_router
from .routers.ingredients import router as ingredients_router
from .routers.invoices import router as invoices_router
from .routers.locations import public_router as public_locations_router, router as locations_router
from .routers.orders import limiter, public_router as public_orders_router, router as orders_router
from .routers.products import public_router as public_products_router, router as products_router
from .routers.stats import router as stats_router
from .routers.webhooks import router as webhooks_router

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("bakehouse")

app = FastAPI(title="Bakehouse API", version="0.1.0")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


app.include_router(health_router, prefix="/api", tags=["health"])
app.include_router(public_products_router, prefix="/api", tags=["storefront"])
app.include_router(public_locations_router, prefix="/api", tags=["storefront"])
app.include_router(public_orders_router, prefix="/api", tags=["storefront"])
app.include_router(webhooks_router, prefix="/api", tags=["webhooks"])

app.include_router(ingredients_router, prefix="/api/admin", tags=["ingredients"])
app.include_router(products_router, prefix="/api/admin", tags=["products"])
app.include_router(locations_router, prefix="/api/admin", tags=["locations"])
app.include_router(batches_router, prefix="/api/admin", tags=["batches"])
app.include_router(freezer_router, prefix="/api/admin", tags=["freezer"])
app.include_router(orders_router, prefix="/api/admin", tags=["orders"])
app.include_router(invoices_router, prefix="/api/admin", tags=["invoices"])
app.include_router(activity_router, prefix="/api/admin", tags=["activity"])
app.include_router(stats_router, prefix="/api/admin", tags=["stats"])
