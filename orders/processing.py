"""
Order Processing Service

Guards (can_*) and offline payment actions applied to an Order. Nothing here
touches the database: callers load the order, call into this service and
commit the session themselves, so every mutation of one request lands in a
single transaction.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_EVEN, Decimal

import structlog

from core.logging import BusinessEvents
from db.models import Order, OrderStatus, PaymentStatus

log = structlog.get_logger(__name__)

CENT = Decimal("0.01")


def round_amount(value) -> Decimal:
    """Round a money value to 2 decimal places."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)


class OrderProcessingService:
    def _changed(self, order: Order, message: str, **fields) -> None:
        order.add_order_note(message)
        log.info(
            BusinessEvents.ORDER_STATE_CHANGED,
            order_guid=str(order.order_guid),
            order_status=order.order_status.value,
            payment_status=order.payment_status.value,
            **fields,
        )

    # Authorization

    def can_mark_as_authorized(self, order: Order) -> bool:
        if order.order_status == OrderStatus.cancelled:
            return False
        return order.payment_status == PaymentStatus.pending

    def mark_as_authorized(self, order: Order) -> None:
        order.payment_status = PaymentStatus.authorized
        self._changed(order, "Order has been marked as authorized")

    # Capture

    def can_mark_as_paid(self, order: Order) -> bool:
        if order.order_status == OrderStatus.cancelled:
            return False
        return order.payment_status in (PaymentStatus.pending, PaymentStatus.authorized)

    def mark_as_paid(self, order: Order) -> None:
        order.payment_status = PaymentStatus.paid
        order.paid_at = datetime.now(UTC)
        if order.order_status == OrderStatus.pending:
            order.order_status = OrderStatus.processing
        self._changed(order, "Order has been marked as paid")

    # Void

    def can_void_offline(self, order: Order) -> bool:
        if order.order_total is None or order.order_total <= 0:
            return False
        return order.payment_status == PaymentStatus.authorized

    def void_offline(self, order: Order) -> None:
        order.payment_status = PaymentStatus.voided
        self._changed(order, "Order has been marked as voided")

    # Refunds

    def can_refund_offline(self, order: Order) -> bool:
        if order.order_total is None or order.order_total <= 0:
            return False
        # Partially refunded orders can only be refunded partially.
        if order.refunded_amount and order.refunded_amount > 0:
            return False
        return order.payment_status == PaymentStatus.paid

    def refund_offline(self, order: Order) -> None:
        amount = order.order_total
        order.refunded_amount = amount
        order.payment_status = PaymentStatus.refunded
        self._changed(
            order,
            f"Order has been marked as refunded. Amount = {round_amount(amount)}",
            refunded_amount=str(round_amount(amount)),
        )

    def can_partially_refund_offline(self, order: Order, amount: Decimal) -> bool:
        if order.order_total is None or order.order_total <= 0:
            return False
        if amount is None or amount <= 0:
            return False
        if amount + (order.refunded_amount or 0) > order.order_total:
            return False
        return order.payment_status in (
            PaymentStatus.paid,
            PaymentStatus.partially_refunded,
        )

    def partially_refund_offline(self, order: Order, amount: Decimal) -> None:
        order.refunded_amount = (order.refunded_amount or Decimal("0")) + amount
        if order.refunded_amount >= order.order_total:
            order.payment_status = PaymentStatus.refunded
        else:
            order.payment_status = PaymentStatus.partially_refunded
        self._changed(
            order,
            f"Order has been marked as partially refunded. Amount = {round_amount(amount)}",
            refunded_amount=str(round_amount(amount)),
        )
