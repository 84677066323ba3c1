"""
Prometheus metrics instrumentation for the storefront payments service.

This module sets up FastAPI instrumentation to expose metrics in Prometheus format
at the /metrics endpoint with optional authentication, and defines the
webhook reconciliation counters.
"""

import ipaddress
import os

from fastapi import Request, status
from fastapi.responses import JSONResponse
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

webhook_events_total = Counter(
    "storefront_webhook_events_total",
    "PayPal webhook notifications by resource type and processing outcome",
    ["resource_type", "outcome"],
)

webhook_verification_failures = Counter(
    "storefront_webhook_verification_failures_total",
    "PayPal webhook notifications rejected by signature verification",
)


def record_webhook(resource_type: str | None, outcome: str) -> None:
    webhook_events_total.labels(
        resource_type=resource_type or "unknown", outcome=outcome
    ).inc()


def is_private_address(host: str | None) -> bool:
    """True for private-network IP literals. Hostnames are never private."""
    if not host:
        return False
    try:
        return ipaddress.ip_address(host).is_private
    except ValueError:
        return False


def init_metrics(app):
    """
    Initialize Prometheus metrics instrumentation for the FastAPI app.

    Args:
        app: FastAPI application instance

    Returns:
        Instrumentator instance
    """
    inst = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
    )
    inst.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    return inst


def add_metrics_auth_middleware(app):
    """
    Add middleware to protect the /metrics endpoint in production.
    For production use, set METRICS_AUTH_TOKEN environment variable.
    """

    @app.middleware("http")
    async def metrics_auth_middleware(request: Request, call_next):
        if request.url.path != "/metrics":
            return await call_next(request)

        if os.getenv("ENVIRONMENT", "development") != "production":
            return await call_next(request)

        auth_header = request.headers.get("X-Metrics-Auth")
        expected_token = os.getenv("METRICS_AUTH_TOKEN")
        if expected_token and auth_header == expected_token:
            return await call_next(request)

        # Allow internal network access (VPN/private networks)
        client_ip = request.client.host if request.client else None
        if is_private_address(client_ip):
            return await call_next(request)

        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": "Metrics endpoint access denied"},
        )
