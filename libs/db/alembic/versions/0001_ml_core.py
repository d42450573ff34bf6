# ruff: noqa: I001
"""Medicine ledger core tables.

Revision ID: 0001_ml_core
Revises: None
Create Date: 2025-09-07
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ml_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "ml_transactions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("supplier", sa.String(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("rate", sa.Numeric(18, 2), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'Pending'")),
        sa.Column("payment_type", sa.String(), nullable=False, server_default=sa.text("''")),
        sa.Column("created_at", sa.Date(), nullable=False),
        sa.Column("saved_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status in ('Pending','Completed','Cancelled')", name="ck_ml_tx_status"
        ),
        sa.CheckConstraint("quantity >= 0", name="ck_ml_tx_quantity"),
        sa.CheckConstraint("rate >= 0", name="ck_ml_tx_rate"),
    )

    op.create_table(
        "ml_settlement_totals",
        sa.Column("transaction_id", sa.String(), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_ml_total_amount"),
    )

    op.create_table(
        "ml_settlement_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("transaction_id", sa.String(), nullable=False),
        sa.Column("group_position", sa.Integer(), nullable=False),
        sa.Column("entry_position", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("payment_type", sa.String(), nullable=False, server_default=sa.text("''")),
        sa.UniqueConstraint(
            "transaction_id", "entry_position", name="uq_ml_history_tx_entry"
        ),
        sa.CheckConstraint("amount > 0", name="ck_ml_history_amount"),
    )
    op.create_index(
        "ix_ml_settlement_history_transaction_id",
        "ml_settlement_history",
        ["transaction_id"],
    )

    op.create_table(
        "ml_catalog_entries",
        sa.Column("kind", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.CheckConstraint("kind in ('categories','suppliers')", name="ck_ml_catalog_kind"),
    )


def downgrade() -> None:
    op.drop_table("ml_catalog_entries")
    op.drop_index("ix_ml_settlement_history_transaction_id", table_name="ml_settlement_history")
    op.drop_table("ml_settlement_history")
    op.drop_table("ml_settlement_totals")
    op.drop_table("ml_transactions")
