"""manual payments

Revision ID: 0001_manual_payments
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001_manual_payments"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "manual_payments",
        sa.Column("transaction_id", sa.String(length=64), primary_key=True),
        sa.Column("driver", sa.String(length=32), nullable=False),
        sa.Column("reference", sa.String(length=32), nullable=False, unique=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("customer_id", sa.String(length=128), nullable=True),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_manual_payments_driver", "manual_payments", ["driver"])
    op.create_index("ix_manual_payments_status_expires_at", "manual_payments", ["status", "expires_at"])


def downgrade() -> None:
    op.drop_index("ix_manual_payments_status_expires_at", table_name="manual_payments")
    op.drop_index("ix_manual_payments_driver", table_name="manual_payments")
    op.drop_table("manual_payments")
