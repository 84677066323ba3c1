"""create orders and order notes

Revision ID: 0001_create_orders
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_create_orders"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

order_status = sa.Enum(
    "pending", "processing", "complete", "cancelled", name="orderstatus"
)
payment_status = sa.Enum(
    "pending",
    "authorized",
    "paid",
    "partially_refunded",
    "refunded",
    "voided",
    name="paymentstatus",
)


def upgrade() -> None:
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_guid", sa.Uuid(), nullable=False),
        sa.Column("order_total", sa.Numeric(18, 4), nullable=False),
        sa.Column("currency_code", sa.String(3), nullable=False),
        sa.Column("order_status", order_status, nullable=False),
        sa.Column("payment_status", payment_status, nullable=False),
        sa.Column("refunded_amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("authorization_transaction_id", sa.String(255)),
        sa.Column("authorization_transaction_result", sa.String(255)),
        sa.Column("capture_transaction_id", sa.String(255)),
        sa.Column("capture_transaction_result", sa.String(255)),
        sa.Column("paid_at", sa.DateTime()),
        sa.Column("applied_refund_ids", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("order_guid", name="uq_orders_order_guid"),
    )
    op.create_index(
        "ix_orders_status_payment", "orders", ["order_status", "payment_status"]
    )

    op.create_table(
        "order_notes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("note", sa.Text(), nullable=False),
        sa.Column("display_to_customer", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_order_notes_order_id", "order_notes", ["order_id"])


def downgrade() -> None:
    op.drop_index("ix_order_notes_order_id", table_name="order_notes")
    op.drop_table("order_notes")
    op.drop_index("ix_orders_status_payment", table_name="orders")
    op.drop_table("orders")
    order_status.drop(op.get_bind(), checkfirst=True)
    payment_status.drop(op.get_bind(), checkfirst=True)
