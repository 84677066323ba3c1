"""
Database Models Module

This module defines SQLAlchemy ORM models for:
- Orders and their payment state
- Order notes (the audit trail written by webhook reconciliation)
"""

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class OrderStatus(PyEnum):
    pending = "pending"
    processing = "processing"
    complete = "complete"
    cancelled = "cancelled"


class PaymentStatus(PyEnum):
    pending = "pending"
    authorized = "authorized"
    paid = "paid"
    partially_refunded = "partially_refunded"
    refunded = "refunded"
    voided = "voided"


class Order(Base):
    """Model representing a placed storefront order and its payment state."""

    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_status_payment", "order_status", "payment_status"),
    )

    id = Column(Integer, primary_key=True)
    order_guid = Column(Uuid, nullable=False, unique=True, default=uuid.uuid4)
    order_total = Column(Numeric(18, 4), nullable=False, default=Decimal("0"))
    currency_code = Column(String(3), nullable=False, default="USD")
    order_status = Column(
        Enum(OrderStatus), nullable=False, default=OrderStatus.pending
    )
    payment_status = Column(
        Enum(PaymentStatus), nullable=False, default=PaymentStatus.pending
    )
    refunded_amount = Column(Numeric(18, 4), nullable=False, default=Decimal("0"))

    authorization_transaction_id = Column(String(255))
    authorization_transaction_result = Column(String(255))
    capture_transaction_id = Column(String(255))
    capture_transaction_result = Column(String(255))
    paid_at = Column(DateTime)

    # Refund ids already applied from webhooks; de-duplicates redeliveries.
    applied_refund_ids = Column(JSON, nullable=False, default=list)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime,
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    notes = relationship(
        "OrderNote",
        back_populates="order",
        order_by="OrderNote.id",
        cascade="all, delete-orphan",
    )

    # Optimistic concurrency: every UPDATE checks and bumps the version.
    __mapper_args__ = {"version_id_col": version}

    def add_order_note(self, note: str, display_to_customer: bool = False) -> "OrderNote":
        order_note = OrderNote(note=note, display_to_customer=display_to_customer)
        self.notes.append(order_note)
        return order_note

    def __repr__(self):
        return (
            f"<Order(id={self.id}, guid={self.order_guid}, "
            f"status={self.order_status}, payment={self.payment_status})>"
        )


class OrderNote(Base):
    """Append-only note attached to an order."""

    __tablename__ = "order_notes"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    note = Column(Text, nullable=False)
    display_to_customer = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(UTC))

    order = relationship("Order", back_populates="notes")

    def __repr__(self):
        return f"<OrderNote(id={self.id}, order_id={self.order_id})>"
