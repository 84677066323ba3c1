"""
Webhook handlers for payment providers
"""

from http import HTTPStatus

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.schemas import WebhookAck
from core.dependencies import get_settings, get_signature_verifier
from core.settings import Settings
from db.session import get_async_db
from payments.verification import WebhookSignatureVerifier
from payments.webhook_handler import WebhookProcessor

router = APIRouter()


@router.post(
    "/webhookhandler",
    response_model=WebhookAck,
    responses={404: {"description": "Order not found"}},
)
async def paypal_webhook(
    request: Request,
    db=Depends(get_async_db),
    verifier: WebhookSignatureVerifier = Depends(get_signature_verifier),
    settings: Settings = Depends(get_settings),
):
    """
    Receive a PayPal webhook notification.

    Always answers 200 so PayPal does not retry deliveries we cannot process,
    except for 404 when the notification does not belong to a known order.
    """
    raw_body = await request.body()
    processor = WebhookProcessor(
        db,
        verifier,
        max_conflict_retries=settings.WEBHOOK_MAX_CONFLICT_RETRIES,
    )
    status_code = await processor.handle(raw_body, request.headers)

    if status_code == HTTPStatus.NOT_FOUND:
        return JSONResponse(status_code=404, content={"detail": "Order not found"})
    return WebhookAck()
