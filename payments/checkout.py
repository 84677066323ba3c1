"""
PayPal checkout state and order creation.

PayPalCheckoutState replaces ad-hoc checkout session properties with a typed
value object. It is created per request by get_checkout_state() and cleared
when the request ends; nothing about a checkout is kept in process memory
between requests.
"""

from collections.abc import Generator
from dataclasses import dataclass
from typing import Any

import structlog
from starlette.concurrency import run_in_threadpool

from core.logging import BusinessEvents
from db.models import Order
from orders.processing import round_amount
from payments.paypal_client import PayPalClient

log = structlog.get_logger(__name__)

PAYER_ACTION_REQUIRED = "PAYER_ACTION_REQUIRED"


@dataclass
class PayPalCheckoutState:
    order_id: str | None = None
    apm_redirect_action_url: str | None = None

    def clear(self) -> None:
        self.order_id = None
        self.apm_redirect_action_url = None


def get_checkout_state() -> Generator[PayPalCheckoutState, None, None]:
    """Request-scoped checkout state dependency."""
    state = PayPalCheckoutState()
    try:
        yield state
    finally:
        state.clear()


def build_order_request(order: Order, store_url: str) -> dict[str, Any]:
    """PayPal order body for a store order.

    custom_id carries the order guid so webhook notifications can be
    correlated back to the order.
    """
    store_url = store_url.rstrip("/")
    return {
        "intent": "CAPTURE",
        "purchase_units": [
            {
                "reference_id": str(order.order_guid),
                "custom_id": str(order.order_guid),
                "amount": {
                    "currency_code": order.currency_code,
                    "value": f"{round_amount(order.order_total):.2f}",
                },
            }
        ],
        "application_context": {
            "return_url": f"{store_url}/api/v1/paypal/redirection-success",
            "cancel_url": f"{store_url}/api/v1/paypal/redirection-cancel",
        },
    }


def payer_action_link(response: dict[str, Any]) -> str | None:
    for link in response.get("links") or []:
        if link.get("rel") == "payer-action":
            return link.get("href")
    return None


async def create_paypal_order(
    client: PayPalClient,
    order: Order,
    store_url: str,
    state: PayPalCheckoutState,
) -> dict[str, Any]:
    """Create the PayPal order for a store order and record it in the checkout state.

    Raises:
        PayPalApiError: PayPal rejected the order or could not be reached.
    """
    body = build_order_request(order, store_url)
    response = await run_in_threadpool(
        client.create_order, body, f"order-{order.order_guid}"
    )

    state.order_id = response.get("id")
    if response.get("status") == PAYER_ACTION_REQUIRED:
        state.apm_redirect_action_url = payer_action_link(response)

    log.info(
        BusinessEvents.PAYPAL_ORDER_CREATED,
        order_guid=str(order.order_guid),
        paypal_order_id=state.order_id,
        status=response.get("status"),
    )
    return response
