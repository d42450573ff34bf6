from __future__ import annotations

import datetime as dt
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------
# Core: ml_transactions
# ---------------------------


class MlTransaction(Base):
    __tablename__ = "ml_transactions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Order of the record within the stored collection; the ledger rewrites
    # the whole collection on every save, so positions are dense 0..n-1.
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    supplier: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'Pending'")
    )
    payment_type: Mapped[str] = mapped_column(String, nullable=False, server_default=text("''"))
    created_at: Mapped[dt.date] = mapped_column(Date, nullable=False)
    saved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status in ('Pending','Completed','Cancelled')",
            name="ck_ml_tx_status",
        ),
        CheckConstraint("quantity >= 0", name="ck_ml_tx_quantity"),
        CheckConstraint("rate >= 0", name="ck_ml_tx_rate"),
    )


# ---------------------------
# Settlement totals and history
# ---------------------------
#
# Neither table carries a foreign key to ml_transactions: each collection is
# overwritten independently (delete-all + insert), and a cascading FK would
# wipe the other collections whenever transactions are rewritten.


class MlSettlementTotal(Base):
    __tablename__ = "ml_settlement_totals"

    transaction_id: Mapped[str] = mapped_column(String, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    __table_args__ = (CheckConstraint("amount >= 0", name="ck_ml_total_amount"),)


class MlSettlementEntry(Base):
    __tablename__ = "ml_settlement_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    # group_position orders transactions within the collection; entry_position
    # orders payments within one transaction's history.
    group_position: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_position: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    payment_type: Mapped[str] = mapped_column(String, nullable=False, server_default=text("''"))

    __table_args__ = (
        UniqueConstraint(
            "transaction_id", "entry_position", name="uq_ml_history_tx_entry"
        ),
        CheckConstraint("amount > 0", name="ck_ml_history_amount"),
    )


# ---------------------------
# Reference: ml_catalog_entries
# ---------------------------


class MlCatalogEntry(Base):
    __tablename__ = "ml_catalog_entries"

    kind: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("kind in ('categories','suppliers')", name="ck_ml_catalog_kind"),
    )


__all__ = [
    "Base",
    "MlTransaction",
    "MlSettlementTotal",
    "MlSettlementEntry",
    "MlCatalogEntry",
]
