"""
API Schemas Module

This module defines Pydantic models for request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from db.models import OrderStatus, PaymentStatus


class OrderNoteOut(BaseModel):
    id: int
    note: str
    display_to_customer: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    """Payment view of an order, including its note history."""

    order_guid: UUID
    order_total: Decimal
    currency_code: str
    order_status: OrderStatus
    payment_status: PaymentStatus
    refunded_amount: Decimal
    authorization_transaction_id: Optional[str] = None
    authorization_transaction_result: Optional[str] = None
    capture_transaction_id: Optional[str] = None
    capture_transaction_result: Optional[str] = None
    paid_at: Optional[datetime] = None
    applied_refund_ids: list[str] = []
    notes: list[OrderNoteOut] = []

    model_config = ConfigDict(from_attributes=True)


class PayPalOrderCreate(BaseModel):
    order_guid: UUID


class PayPalOrderOut(BaseModel):
    paypal_order_id: Optional[str] = None
    status: Optional[str] = None
    redirect_url: Optional[str] = None
    gateway_response: dict[str, Any]


class WebhookAck(BaseModel):
    status: str = "ok"
