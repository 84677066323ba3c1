"""
PayPal Webhook Notifications

Parses the raw body PayPal posts to the webhook endpoint into an immutable
WebhookNotification. Only the fields reconciliation needs are modeled; the
full event is kept as well because signature verification has to echo it
back to PayPal.
"""

import json
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from payments.errors import MalformedPayload


class EventType(str, Enum):
    authorization = "authorization"
    capture = "capture"
    refund = "refund"
    unknown = "unknown"

    @classmethod
    def from_resource_type(cls, resource_type: str | None) -> "EventType":
        try:
            return cls((resource_type or "").lower())
        except ValueError:
            return cls.unknown


class Amount(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    value: Optional[str] = None
    currency_code: Optional[str] = None


class PurchaseUnit(BaseModel):
    custom_id: Optional[str] = None


class WebhookResource(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    custom_id: Optional[str] = None
    amount: Optional[Amount] = None
    purchase_units: Optional[list[PurchaseUnit]] = None


class WebhookEnvelope(BaseModel):
    id: Optional[str] = None
    event_type: Optional[str] = None
    resource_type: Optional[str] = None
    resource: Optional[WebhookResource] = None


class WebhookNotification(BaseModel):
    """One inbound notification, immutable once parsed."""

    model_config = ConfigDict(frozen=True)

    event_id: Optional[str]
    event_type: EventType
    resource_type: Optional[str]
    resource_status: str
    resource_id: Optional[str]
    amount: Optional[Decimal]
    currency: Optional[str]
    correlation_id: Optional[str]
    raw_payload: bytes
    event: dict[str, Any]

    @property
    def raw_text(self) -> str:
        return self.raw_payload.decode("utf-8", errors="replace")


def parse_amount(value: str | None) -> Decimal | None:
    """Parse a PayPal money value; anything that is not a finite number is None."""
    if value is None:
        return None
    try:
        amount = Decimal(value.strip())
    except (InvalidOperation, AttributeError):
        return None
    return amount if amount.is_finite() else None


def resolve_correlation_id(resource: WebhookResource | None) -> str | None:
    """The order guid travels as custom_id, on the resource or its first purchase unit."""
    if resource is None:
        return None
    if resource.custom_id:
        return resource.custom_id
    if resource.purchase_units:
        return resource.purchase_units[0].custom_id
    return None


def parse_notification(raw_body: bytes) -> WebhookNotification:
    """Parse a webhook body.

    Raises:
        MalformedPayload: body is not a JSON object of the expected shape.
    """
    try:
        event = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError, RecursionError) as exc:
        raise MalformedPayload(f"Webhook body is not valid JSON: {exc}") from exc

    if not isinstance(event, dict):
        raise MalformedPayload("Webhook body is not a JSON object")

    try:
        envelope = WebhookEnvelope.model_validate(event)
    except (ValidationError, RecursionError) as exc:
        raise MalformedPayload(f"Unexpected webhook shape: {exc}") from exc

    resource = envelope.resource
    amount = resource.amount if resource else None

    return WebhookNotification(
        event_id=envelope.id,
        event_type=EventType.from_resource_type(envelope.resource_type),
        resource_type=envelope.resource_type,
        resource_status=((resource.status if resource else None) or "").lower(),
        resource_id=resource.id if resource else None,
        amount=parse_amount(amount.value if amount else None),
        currency=amount.currency_code if amount else None,
        correlation_id=resolve_correlation_id(resource),
        raw_payload=raw_body,
        event=event,
    )
