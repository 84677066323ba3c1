"""
Storefront Payments - Main Application Entry Point

This module initializes the FastAPI application and sets up the core routing.
It serves the PayPal side of the storefront checkout: creating PayPal orders
and reconciling order payment state from PayPal webhook notifications.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from api import routes, webhooks
from api.middleware import log_api_entry
from core.dependencies import clear_settings, get_settings, init_settings
from core.logging import configure_logging
from core.metrics import add_metrics_auth_middleware, init_metrics
from core.settings import Settings
from core.tracing import init_tracer
from db.session import init_async_db, init_db

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI application startup and shutdown events."""
    init_settings()
    settings = get_settings()

    init_tracer(settings.OTEL_SERVICE_NAME)

    if settings.DATABASE_URL.startswith("postgresql"):
        await init_async_db(settings)
    else:
        init_db(settings)

    if not settings.PAYPAL_WEBHOOK_ID:
        log.warning("paypal.webhook_id_missing", detail="webhooks will not verify")

    yield
    clear_settings()


app = FastAPI(
    title="Storefront Payments",
    description="""
    ## PayPal payments for the storefront

    ### Key Features:
    - **Webhook reconciliation**: authorization, capture and refund notifications
      are verified with PayPal and applied to the order's payment state
    - **Idempotent delivery handling**: redelivered and reordered notifications
      are safe; refunds are de-duplicated by id
    - **Checkout**: PayPal order creation correlated to store orders
    - **Operations**: order note audit trail, metrics, tracing and structured logs
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

FastAPIInstrumentor.instrument_app(app)

init_metrics(app)
add_metrics_auth_middleware(app)

app.middleware("http")(log_api_entry)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log.error("api.unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


@app.get("/")
async def root():
    """Root endpoint providing API information."""
    return {
        "name": "Storefront Payments",
        "version": "1.0.0",
        "endpoints": {
            "webhook": "/payments/webhookhandler - PayPal webhook notifications",
            "paypal": "/api/v1/paypal/ - PayPal checkout",
            "orders": "/api/v1/orders/{order_guid} - Order payment state",
            "health": "/health - Health check endpoint",
            "metrics": "/metrics - Prometheus metrics",
        },
    }


@app.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    """Health check endpoint alias."""
    return await health_check(settings)


@app.get("/healthz")
async def health_check(settings: Settings = Depends(get_settings)):
    """Health check endpoint to verify API status."""
    db_type = (
        "PostgreSQL" if settings.DATABASE_URL.startswith("postgresql") else "SQLite"
    )
    return {
        "status": "ok",
        "app_name": settings.APP_NAME,
        "database": db_type,
        "environment": settings.ENVIRONMENT,
        "webhook_verification": bool(settings.PAYPAL_WEBHOOK_ID),
    }


API_PREFIX = "/api/v1"

app.include_router(routes.router, prefix=API_PREFIX)
# PayPal is configured with this exact path; it is not versioned.
app.include_router(webhooks.router, prefix="/payments", tags=["webhooks"])


def main():
    configure_logging()
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
