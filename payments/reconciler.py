"""
Webhook Event Reconciler

Applies a verified PayPal notification to an order's payment state. The legal
transitions form a closed table keyed by (event type, resource status).
Every precondition is checked against the order as loaded in the current
transaction; PayPal redelivers and reorders events, so a failed precondition
is a silent no-op rather than an error.

Only refunds carry an explicit idempotency ledger (Order.applied_refund_ids).
Authorization and capture redeliveries are rejected by the order's own
payment-status guards.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from db.models import Order, OrderStatus
from orders.processing import OrderProcessingService, round_amount
from payments.errors import UnsupportedResourceType
from payments.notifications import EventType, WebhookNotification

log = structlog.get_logger(__name__)


class Outcome(str, Enum):
    applied = "applied"
    skipped = "skipped"  # a precondition did not hold
    ignored = "ignored"  # no transition for this status


@dataclass(frozen=True)
class ReconcileResult:
    outcome: Outcome
    transition: str | None = None
    reason: str | None = None


Handler = Callable[["EventReconciler", Order, WebhookNotification], ReconcileResult]

TRANSITIONS: dict[tuple[EventType, str], Handler] = {}


def transition(event_type: EventType, *statuses: str):
    def register(func: Handler) -> Handler:
        for status in statuses:
            TRANSITIONS[(event_type, status)] = func
        return func

    return register


def _applied(name: str) -> ReconcileResult:
    return ReconcileResult(Outcome.applied, transition=name)


def _skipped(name: str, reason: str) -> ReconcileResult:
    return ReconcileResult(Outcome.skipped, transition=name, reason=reason)


def _matches_total(order: Order, notification: WebhookNotification) -> bool:
    return notification.amount is not None and notification.amount == round_amount(
        order.order_total
    )


# Authorization


@transition(EventType.authorization, "created")
def authorization_created(self, order, notification):
    name = "authorization.created"
    if not _matches_total(order, notification):
        return _skipped(name, "amount does not match order total")
    if not self.processing.can_mark_as_authorized(order):
        return _skipped(name, "order cannot be marked as authorized")
    order.authorization_transaction_id = notification.resource_id
    order.authorization_transaction_result = notification.resource_status
    self.processing.mark_as_authorized(order)
    return _applied(name)


@transition(EventType.authorization, "denied", "expired", "pending")
def authorization_unsettled(self, order, notification):
    # Authorization outcomes land in the authorization result, never the capture result.
    order.authorization_transaction_result = notification.resource_status
    order.order_status = OrderStatus.pending
    return _applied(f"authorization.{notification.resource_status}")


@transition(EventType.authorization, "voided")
def authorization_voided(self, order, notification):
    name = "authorization.voided"
    if not self.processing.can_void_offline(order):
        return _skipped(name, "order cannot be voided")
    order.authorization_transaction_id = notification.resource_id
    order.authorization_transaction_result = notification.resource_status
    self.processing.void_offline(order)
    return _applied(name)


# Capture


@transition(EventType.capture, "completed")
def capture_completed(self, order, notification):
    name = "capture.completed"
    if notification.amount is None:
        return _skipped(name, "amount missing or unparseable")
    if not self.processing.can_mark_as_paid(order):
        return _skipped(name, "order cannot be marked as paid")
    if not _matches_total(order, notification):
        return _skipped(name, "amount does not match order total")
    order.capture_transaction_id = notification.resource_id
    order.capture_transaction_result = notification.resource_status
    self.processing.mark_as_paid(order)
    return _applied(name)


@transition(EventType.capture, "pending")
def capture_pending(self, order, notification):
    order.capture_transaction_result = notification.resource_status
    order.order_status = OrderStatus.pending
    return _applied("capture.pending")


@transition(EventType.capture, "declined")
def capture_declined(self, order, notification):
    order.capture_transaction_result = notification.resource_status
    order.order_status = OrderStatus.cancelled
    return _applied("capture.declined")


@transition(EventType.capture, "refunded")
def capture_refunded(self, order, notification):
    name = "capture.refunded"
    if not self.processing.can_refund_offline(order):
        return _skipped(name, "order cannot be refunded")
    self.processing.refund_offline(order)
    return _applied(name)


# Refund


@transition(EventType.refund, "completed")
def refund_completed(self, order, notification):
    name = "refund.completed"
    refund_id = notification.resource_id
    applied = list(order.applied_refund_ids or [])
    if not refund_id:
        return _skipped(name, "refund id missing")
    if refund_id in applied:
        return _skipped(name, "refund already applied")
    if notification.amount is None:
        return _skipped(name, "amount missing or unparseable")
    if not self.processing.can_partially_refund_offline(order, notification.amount):
        return _skipped(name, "order cannot be partially refunded")
    self.processing.partially_refund_offline(order, notification.amount)
    # Reassign so SQLAlchemy sees the JSON column change.
    order.applied_refund_ids = [*applied, refund_id]
    return _applied(name)


class EventReconciler:
    def __init__(self, processing: OrderProcessingService | None = None):
        self.processing = processing or OrderProcessingService()

    def reconcile(self, order: Order, notification: WebhookNotification) -> ReconcileResult:
        """Append the audit note and apply the matching transition.

        Raises:
            UnsupportedResourceType: the notification is not an authorization,
                capture or refund event. Nothing is changed on the order.
        """
        if notification.event_type == EventType.unknown:
            raise UnsupportedResourceType(notification.resource_type)

        order.add_order_note(f"Webhook: \n{notification.raw_text}")

        handler = TRANSITIONS.get((notification.event_type, notification.resource_status))
        if handler is None:
            return ReconcileResult(
                Outcome.ignored,
                transition=f"{notification.event_type.value}.{notification.resource_status}",
            )
        return handler(self, order, notification)
