"""
PayPal checkout routes: order creation and the payer redirection targets.
"""

from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from api.schemas import PayPalOrderCreate, PayPalOrderOut
from core.dependencies import get_paypal_client, get_settings
from core.settings import Settings
from db.session import get_async_db
from orders.repository import find_order_by_guid
from payments.checkout import PayPalCheckoutState, create_paypal_order, get_checkout_state
from payments.errors import PayPalApiError
from payments.paypal_client import PayPalClient

log = structlog.get_logger(__name__)

router = APIRouter()

CONFIRM_URL = "/checkout/confirm"
PAYMENT_METHOD_URL = "/checkout/payment-method"


@router.post("/orders", response_model=PayPalOrderOut)
async def create_order(
    body: PayPalOrderCreate,
    db=Depends(get_async_db),
    client: PayPalClient = Depends(get_paypal_client),
    settings: Settings = Depends(get_settings),
    state: PayPalCheckoutState = Depends(get_checkout_state),
):
    """
    Create a PayPal order for a placed store order.

    The store order guid is sent as the PayPal `custom_id`, which is how
    later webhook notifications find their way back to the order.

    **Response Example:**
    ```json
    {
        "paypal_order_id": "5O190127TN364715T",
        "status": "PAYER_ACTION_REQUIRED",
        "redirect_url": "https://www.sandbox.paypal.com/checkoutnow?token=5O190127TN364715T",
        "gateway_response": {"id": "5O190127TN364715T", "status": "PAYER_ACTION_REQUIRED"}
    }
    ```
    """
    order = await find_order_by_guid(db, body.order_guid)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")

    try:
        response = await create_paypal_order(client, order, settings.STORE_URL, state)
    except PayPalApiError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return PayPalOrderOut(
        paypal_order_id=state.order_id,
        status=response.get("status"),
        redirect_url=state.apm_redirect_action_url,
        gateway_response=response,
    )


@router.get("/redirection-success")
async def redirection_success(token: str | None = Query(default=None)):
    """PayPal sends the payer back here with the PayPal order id as `token`.

    The id is handed on to the confirm step, which submits the order form.
    """
    if not token:
        log.warning("paypal.redirection_missing_order_id")
        return RedirectResponse(PAYMENT_METHOD_URL, status_code=303)

    query = urlencode({"paypal_order_id": token, "submit_form": "true"})
    return RedirectResponse(f"{CONFIRM_URL}?{query}", status_code=303)


@router.get("/redirection-cancel")
async def redirection_cancel():
    return RedirectResponse(PAYMENT_METHOD_URL, status_code=303)
