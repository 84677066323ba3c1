"""
Webhook event reconciliation against an order's payment state.
"""

import uuid
from decimal import Decimal

import pytest

from db.models import OrderStatus, PaymentStatus
from payments.errors import UnsupportedResourceType
from payments.notifications import parse_notification
from payments.reconciler import TRANSITIONS, EventReconciler, Outcome
from tests.conftest import make_event, to_body
from tests.test_processing import build_order


def notify(resource_type="capture", status="COMPLETED", amount="49.99", resource_id="RES-1"):
    return parse_notification(
        to_body(
            make_event(
                resource_type,
                status,
                amount,
                custom_id=str(uuid.uuid4()),
                resource_id=resource_id,
            )
        )
    )


def webhook_notes(order):
    return [n.note for n in order.notes if n.note.startswith("Webhook:")]


@pytest.fixture
def reconciler():
    return EventReconciler()


def test_transition_table_is_exhaustive():
    keys = {(t.value, s) for t, s in TRANSITIONS}
    assert keys == {
        ("authorization", "created"),
        ("authorization", "denied"),
        ("authorization", "expired"),
        ("authorization", "pending"),
        ("authorization", "voided"),
        ("capture", "completed"),
        ("capture", "pending"),
        ("capture", "declined"),
        ("capture", "refunded"),
        ("refund", "completed"),
    }


# Authorization


def test_authorization_created_marks_authorized(reconciler):
    order = build_order(total="49.99")

    result = reconciler.reconcile(order, notify("authorization", "CREATED", resource_id="AUTH-1"))

    assert result.outcome == Outcome.applied
    assert order.payment_status == PaymentStatus.authorized
    assert order.authorization_transaction_id == "AUTH-1"
    assert order.authorization_transaction_result == "created"


def test_authorization_created_with_other_amount_is_skipped(reconciler):
    order = build_order(total="49.99")

    result = reconciler.reconcile(order, notify("authorization", "CREATED", amount="49.98"))

    assert result.outcome == Outcome.skipped
    assert order.payment_status == PaymentStatus.pending
    assert order.authorization_transaction_id is None


def test_authorization_redelivery_is_rejected_by_guard(reconciler):
    order = build_order(total="49.99")
    reconciler.reconcile(order, notify("authorization", "CREATED", resource_id="AUTH-1"))

    result = reconciler.reconcile(order, notify("authorization", "CREATED", resource_id="AUTH-2"))

    assert result.outcome == Outcome.skipped
    assert order.authorization_transaction_id == "AUTH-1"


@pytest.mark.parametrize("status", ["DENIED", "EXPIRED", "PENDING"])
def test_authorization_unsettled_sets_order_pending(reconciler, status):
    order = build_order(PaymentStatus.authorized, OrderStatus.processing)

    result = reconciler.reconcile(order, notify("authorization", status))

    assert result.outcome == Outcome.applied
    assert order.order_status == OrderStatus.pending
    assert order.authorization_transaction_result == status.lower()
    assert order.capture_transaction_result is None


def test_authorization_voided(reconciler):
    order = build_order(PaymentStatus.authorized)

    result = reconciler.reconcile(order, notify("authorization", "VOIDED", resource_id="AUTH-9"))

    assert result.outcome == Outcome.applied
    assert order.payment_status == PaymentStatus.voided
    assert order.authorization_transaction_id == "AUTH-9"


def test_authorization_voided_after_capture_is_skipped(reconciler):
    order = build_order(PaymentStatus.paid, OrderStatus.processing)

    result = reconciler.reconcile(order, notify("authorization", "VOIDED"))

    assert result.outcome == Outcome.skipped
    assert order.payment_status == PaymentStatus.paid


# Capture


def test_capture_completed_scenario(reconciler):
    order = build_order(total="49.99")

    result = reconciler.reconcile(
        order, notify("capture", "COMPLETED", amount="49.99", resource_id="2GG279541U471931P")
    )

    assert result.outcome == Outcome.applied
    assert order.payment_status == PaymentStatus.paid
    assert order.order_status == OrderStatus.processing
    assert order.capture_transaction_id == "2GG279541U471931P"
    assert order.capture_transaction_result == "completed"


@pytest.mark.parametrize("amount", ["49.98", "50", "0.01", "nope", None])
def test_capture_completed_with_mismatched_amount_changes_nothing(reconciler, amount):
    order = build_order(total="49.99")

    result = reconciler.reconcile(order, notify("capture", "COMPLETED", amount=amount))

    assert result.outcome == Outcome.skipped
    assert order.payment_status == PaymentStatus.pending
    assert order.order_status == OrderStatus.pending
    assert order.capture_transaction_id is None
    assert order.capture_transaction_result is None


def test_capture_completed_compares_rounded_total(reconciler):
    order = build_order(total="49.9900")
    result = reconciler.reconcile(order, notify("capture", "COMPLETED", amount="49.990"))
    assert result.outcome == Outcome.applied


def test_capture_redelivery_is_rejected_by_guard(reconciler):
    order = build_order(total="49.99")
    reconciler.reconcile(order, notify("capture", "COMPLETED", resource_id="CAP-1"))
    paid_at = order.paid_at

    result = reconciler.reconcile(order, notify("capture", "COMPLETED", resource_id="CAP-2"))

    assert result.outcome == Outcome.skipped
    assert order.capture_transaction_id == "CAP-1"
    assert order.paid_at == paid_at


def test_capture_pending(reconciler):
    order = build_order(PaymentStatus.authorized, OrderStatus.processing)

    reconciler.reconcile(order, notify("capture", "PENDING"))

    assert order.order_status == OrderStatus.pending
    assert order.capture_transaction_result == "pending"


def test_capture_declined_cancels_order(reconciler):
    order = build_order(PaymentStatus.authorized)

    reconciler.reconcile(order, notify("capture", "DECLINED"))

    assert order.order_status == OrderStatus.cancelled
    assert order.capture_transaction_result == "declined"


def test_capture_refunded_refunds_paid_order(reconciler):
    order = build_order(PaymentStatus.paid, OrderStatus.processing, total="49.99")

    result = reconciler.reconcile(order, notify("capture", "REFUNDED"))

    assert result.outcome == Outcome.applied
    assert order.payment_status == PaymentStatus.refunded
    assert order.refunded_amount == Decimal("49.99")


def test_capture_refunded_before_capture_is_skipped(reconciler):
    order = build_order(PaymentStatus.pending)

    result = reconciler.reconcile(order, notify("capture", "REFUNDED"))

    assert result.outcome == Outcome.skipped
    assert order.payment_status == PaymentStatus.pending


# Refund


def test_refund_completed_applies_partial_refund(reconciler):
    order = build_order(PaymentStatus.paid, OrderStatus.processing, total="100.00")

    result = reconciler.reconcile(
        order, notify("refund", "COMPLETED", amount="25.00", resource_id="REF-1")
    )

    assert result.outcome == Outcome.applied
    assert order.payment_status == PaymentStatus.partially_refunded
    assert order.refunded_amount == Decimal("25.00")
    assert order.applied_refund_ids == ["REF-1"]


def test_same_refund_is_applied_once(reconciler):
    order = build_order(PaymentStatus.paid, OrderStatus.processing, total="100.00")
    event = notify("refund", "COMPLETED", amount="25.00", resource_id="REF-1")

    first = reconciler.reconcile(order, event)
    second = reconciler.reconcile(order, event)

    assert first.outcome == Outcome.applied
    assert second.outcome == Outcome.skipped
    assert order.refunded_amount == Decimal("25.00")
    assert order.applied_refund_ids == ["REF-1"]
    # Both deliveries are on record even though only one was applied.
    assert len(webhook_notes(order)) == 2


def test_distinct_refunds_accumulate(reconciler):
    order = build_order(PaymentStatus.paid, OrderStatus.processing, total="100.00")

    reconciler.reconcile(order, notify("refund", "COMPLETED", amount="40.00", resource_id="REF-1"))
    reconciler.reconcile(order, notify("refund", "COMPLETED", amount="60.00", resource_id="REF-2"))

    assert order.payment_status == PaymentStatus.refunded
    assert order.applied_refund_ids == ["REF-1", "REF-2"]


def test_refund_exceeding_total_is_skipped(reconciler):
    order = build_order(PaymentStatus.paid, OrderStatus.processing, total="10.00")

    result = reconciler.reconcile(
        order, notify("refund", "COMPLETED", amount="10.01", resource_id="REF-1")
    )

    assert result.outcome == Outcome.skipped
    assert order.applied_refund_ids == []


# Dispatch


def test_unknown_status_is_ignored_but_noted(reconciler):
    order = build_order()

    result = reconciler.reconcile(order, notify("capture", "REVERSED"))

    assert result.outcome == Outcome.ignored
    assert order.payment_status == PaymentStatus.pending
    assert len(webhook_notes(order)) == 1


def test_unknown_resource_type_raises_without_touching_order(reconciler):
    order = build_order()

    with pytest.raises(UnsupportedResourceType):
        reconciler.reconcile(order, notify("checkout-order", "APPROVED"))

    assert order.notes == []


def test_audit_note_records_raw_body(reconciler):
    order = build_order(total="49.99")
    event = notify("capture", "COMPLETED")

    reconciler.reconcile(order, event)

    assert order.notes[0].note == "Webhook: \n" + event.raw_text
    assert order.notes[0].display_to_customer is False
