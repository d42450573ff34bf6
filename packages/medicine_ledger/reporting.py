"""Currency formatting and CSV export of the purchase ledger."""

from __future__ import annotations

import csv
from decimal import ROUND_HALF_UP, Decimal
from typing import IO

from .ledger import SettlementLedger
from .models import CENTS, ZERO

CURRENCY_SYMBOL = "₹"

EXPORT_COLUMNS: tuple[str, ...] = (
    "id",
    "name",
    "category",
    "supplier",
    "quantity",
    "rate",
    "purchase_amount",
    "settlement_amount",
    "balance",
    "status",
    "payment_type",
    "created_at",
)


def _group_indian(digits: str) -> str:
    # Last three digits form one group; the rest are grouped in pairs.
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups: list[str] = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join([*groups, tail])


def format_currency(amount: Decimal | int | str) -> str:
    """Format as rupees with Indian digit grouping, e.g. ``₹1,23,456.50``."""

    d = Decimal(str(amount)).quantize(CENTS, rounding=ROUND_HALF_UP)
    sign = "-" if d < 0 else ""
    whole, _, frac = f"{abs(d):.2f}".partition(".")
    return f"{sign}{CURRENCY_SYMBOL}{_group_indian(whole)}.{frac}"


def export_csv(ledger: SettlementLedger, fp: IO[str]) -> int:
    """Write one row per transaction to ``fp``; returns the number of rows.

    Amounts are plain 2dp numbers (no symbol or grouping) so spreadsheets
    parse them.
    """

    writer = csv.writer(fp)
    writer.writerow(EXPORT_COLUMNS)
    n = 0
    for tx in ledger.transactions():
        settled = ledger.settlement_total(tx.id)
        writer.writerow(
            [
                tx.id,
                tx.name,
                tx.category,
                tx.supplier,
                tx.quantity,
                f"{tx.rate:.2f}",
                f"{tx.purchase_amount:.2f}",
                f"{settled:.2f}",
                f"{max(tx.purchase_amount - settled, ZERO):.2f}",
                tx.status.value,
                tx.payment_type,
                tx.created_at.isoformat() if tx.created_at else "",
            ]
        )
        n += 1
    return n


__all__ = ["CURRENCY_SYMBOL", "EXPORT_COLUMNS", "format_currency", "export_csv"]
