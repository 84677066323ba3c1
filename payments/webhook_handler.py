"""
PayPal webhook processing.

Business logic for one webhook delivery, kept apart from HTTP routing:

    parse -> verify signature -> resolve order -> reconcile -> commit

Delivery policy towards PayPal: every delivery is acknowledged with 200
except when the order cannot be located (404). Malformed bodies, failed
verification, unsupported resource types and internal errors are logged
with the raw payload and acknowledged, so PayPal never retries a delivery
we could not process by retrying the same bytes.
"""

from collections.abc import Mapping
from http import HTTPStatus

import structlog
import tenacity
from sqlalchemy.orm.exc import StaleDataError

from core.logging import BusinessEvents
from core.metrics import record_webhook, webhook_verification_failures
from core.tracing import get_tracer
from orders.repository import find_order_by_correlation_id
from payments.errors import (
    MalformedPayload,
    OrderNotFound,
    UnsupportedResourceType,
    VerificationError,
)
from payments.notifications import WebhookNotification, parse_notification
from payments.reconciler import EventReconciler, Outcome, ReconcileResult
from payments.verification import WebhookSignatureVerifier

log = structlog.get_logger(__name__)
tracer = get_tracer(__name__)


class WebhookProcessor:
    """Handles one PayPal webhook delivery against one database session."""

    def __init__(
        self,
        db,
        verifier: WebhookSignatureVerifier,
        reconciler: EventReconciler | None = None,
        max_conflict_retries: int = 3,
    ):
        self.db = db
        self.verifier = verifier
        self.reconciler = reconciler or EventReconciler()
        self.max_conflict_retries = max(1, max_conflict_retries)

    async def handle(self, raw_body: bytes, headers: Mapping[str, str]) -> HTTPStatus:
        if not raw_body or not raw_body.strip():
            return HTTPStatus.OK

        with tracer.start_as_current_span("paypal.webhook") as span:
            try:
                notification = parse_notification(raw_body)
            except MalformedPayload as e:
                log.error(
                    BusinessEvents.WEBHOOK_MALFORMED,
                    error=str(e),
                    raw_payload=raw_body.decode("utf-8", errors="replace"),
                )
                record_webhook(None, "malformed")
                return HTTPStatus.OK
            except Exception as e:
                log.exception(
                    BusinessEvents.WEBHOOK_FAILED,
                    error=str(e),
                    raw_payload=raw_body.decode("utf-8", errors="replace"),
                )
                record_webhook(None, "failed")
                return HTTPStatus.OK

            bound = log.bind(
                event_id=notification.event_id,
                resource_type=notification.resource_type,
                resource_status=notification.resource_status,
                resource_id=notification.resource_id,
            )
            span.set_attribute("paypal.event_id", notification.event_id or "")
            span.set_attribute("paypal.resource_type", notification.resource_type or "")
            bound.info(BusinessEvents.WEBHOOK_RECEIVED)

            try:
                await self.verifier.verify(headers, notification.event)
            except VerificationError as e:
                bound.warning(
                    BusinessEvents.WEBHOOK_VERIFICATION_FAILED,
                    error=str(e),
                    raw_payload=notification.raw_text,
                )
                webhook_verification_failures.inc()
                record_webhook(notification.resource_type, "unverified")
                return HTTPStatus.OK
            except Exception as e:
                bound.exception(
                    BusinessEvents.WEBHOOK_FAILED,
                    error=str(e),
                    raw_payload=notification.raw_text,
                )
                record_webhook(notification.resource_type, "failed")
                return HTTPStatus.OK

            try:
                result = await self._apply_with_retries(notification)
            except OrderNotFound as e:
                await self.db.rollback()
                bound.warning(
                    BusinessEvents.WEBHOOK_ORDER_NOT_FOUND,
                    correlation_id=e.correlation_id,
                )
                record_webhook(notification.resource_type, "order_not_found")
                return HTTPStatus.NOT_FOUND
            except UnsupportedResourceType as e:
                await self.db.rollback()
                bound.error(
                    BusinessEvents.WEBHOOK_UNSUPPORTED,
                    error=str(e),
                    raw_payload=notification.raw_text,
                )
                record_webhook(notification.resource_type, "unsupported")
                return HTTPStatus.OK
            except Exception as e:
                await self.db.rollback()
                bound.exception(
                    BusinessEvents.WEBHOOK_FAILED,
                    error=str(e),
                    raw_payload=notification.raw_text,
                )
                record_webhook(notification.resource_type, "failed")
                return HTTPStatus.OK

            span.set_attribute("paypal.outcome", result.outcome.value)
            event = (
                BusinessEvents.WEBHOOK_APPLIED
                if result.outcome == Outcome.applied
                else BusinessEvents.WEBHOOK_SKIPPED
            )
            bound.info(
                event,
                outcome=result.outcome.value,
                transition=result.transition,
                reason=result.reason,
            )
            record_webhook(notification.resource_type, result.outcome.value)
            return HTTPStatus.OK

    async def _apply_with_retries(
        self, notification: WebhookNotification
    ) -> ReconcileResult:
        # A concurrent delivery for the same order bumps its version; reload
        # and re-evaluate the guards against the row that won.
        async for attempt in tenacity.AsyncRetrying(
            stop=tenacity.stop_after_attempt(self.max_conflict_retries),
            retry=tenacity.retry_if_exception_type(StaleDataError),
            reraise=True,
        ):
            with attempt:
                return await self._apply_once(notification)

    async def _apply_once(self, notification: WebhookNotification) -> ReconcileResult:
        order = await find_order_by_correlation_id(self.db, notification.correlation_id)
        if order is None:
            raise OrderNotFound(notification.correlation_id)
        order_guid = str(order.order_guid)

        result = self.reconciler.reconcile(order, notification)
        try:
            await self.db.commit()
        except StaleDataError:
            await self.db.rollback()
            log.warning(
                BusinessEvents.WEBHOOK_CONFLICT,
                event_id=notification.event_id,
                order_guid=order_guid,
            )
            raise
        return result
