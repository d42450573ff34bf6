"""Records, enums and stored shapes for ``medicine_ledger``.

Domain records (:class:`Transaction`, :class:`SettlementRecord` and the result
types) are frozen dataclasses; the ledger replaces them rather than mutating
them. The ``Stored*`` pydantic models describe the JSON-friendly shape each
record takes inside a store collection and validate it on the way back in.

Money is always :class:`decimal.Decimal` quantized to two places with
``ROUND_HALF_UP``.
"""

from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

# Upper bounds keep every purchase amount within the ``Numeric(18, 2)`` columns
# of the SQL store: MAX_QUANTITY * MAX_RATE < MAX_AMOUNT.
MAX_AMOUNT = Decimal("9999999999999999.99")
MAX_QUANTITY = 1_000_000
MAX_RATE = Decimal("999999999.99")

# Labels offered by the payment dialogs. The ledger stores any label verbatim.
PAYMENT_TYPES: tuple[str, ...] = ("Cash", "UPI", "Bank Transfer", "Card", "Cheque")


def parse_decimal(raw: Any) -> Decimal | None:
    """Parse ``raw`` into a finite ``Decimal`` without rounding; ``None`` otherwise."""

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
    try:
        d = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def to_money(raw: Any) -> Decimal | None:
    """Parse ``raw`` into a 2dp ``Decimal``.

    ``None`` when it is not a finite number or has too many digits to hold
    two decimal places.
    """

    d = parse_decimal(raw)
    if d is None:
        return None
    try:
        return d.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None


class TransactionStatus(str, enum.Enum):
    """Lifecycle label of a purchase. Any state may move to any other."""

    PENDING = "Pending"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @classmethod
    def parse(cls, raw: TransactionStatus | str) -> TransactionStatus:
        """Case-insensitive lookup by value; raises ``ValueError`` when unknown."""

        if isinstance(raw, cls):
            return raw
        text = str(raw).strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"unknown status {raw!r}")


# ---------------------------------------------------------------------------
# Stored shapes
# ---------------------------------------------------------------------------


class StoredTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str
    name: str
    category: str
    supplier: str
    quantity: int
    rate: Decimal
    status: TransactionStatus = TransactionStatus.PENDING
    payment_type: str = ""
    created_at: date

    @field_validator("quantity")
    @classmethod
    def _quantity_in_range(cls, v: int) -> int:
        if v < 0:
            raise ValueError("quantity must be >= 0")
        if v > MAX_QUANTITY:
            raise ValueError(f"quantity must be <= {MAX_QUANTITY}")
        return v

    @field_validator("rate")
    @classmethod
    def _rate_in_range(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("rate must be >= 0")
        if v > MAX_RATE:
            raise ValueError(f"rate must be <= {MAX_RATE}")
        return v.quantize(CENTS, rounding=ROUND_HALF_UP)

    @field_validator("status", mode="before")
    @classmethod
    def _status_any_case(cls, v: Any) -> Any:
        return TransactionStatus.parse(v) if isinstance(v, str) else v


class StoredSettlementTotal(BaseModel):
    model_config = ConfigDict(extra="ignore")

    transaction_id: str
    amount: Decimal

    @field_validator("amount")
    @classmethod
    def _total_in_range(cls, v: Decimal) -> Decimal:
        if not 0 <= v <= MAX_AMOUNT:
            raise ValueError(f"settlement total must be within 0..{MAX_AMOUNT}")
        return v.quantize(CENTS, rounding=ROUND_HALF_UP)


class StoredSettlementEntry(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    amount: Decimal
    date: dt.date
    payment_type: str = ""

    @field_validator("amount")
    @classmethod
    def _amount_in_range(cls, v: Decimal) -> Decimal:
        if not 0 < v <= MAX_AMOUNT:
            raise ValueError(f"settlement amount must be within (0, {MAX_AMOUNT}]")
        return v.quantize(CENTS, rounding=ROUND_HALF_UP)


class StoredSettlementHistory(BaseModel):
    model_config = ConfigDict(extra="ignore")

    transaction_id: str
    entries: list[StoredSettlementEntry]


class StoredCatalogEntry(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str


# ---------------------------------------------------------------------------
# Domain records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Transaction:
    """A medicine purchase.

    ``purchase_amount`` is derived from ``quantity`` and ``rate`` and never
    stored. ``created_at`` doubles as the date of the latest edit, which is how
    the purchase screen has always used it.
    """

    id: str
    name: str
    category: str
    supplier: str
    quantity: int
    rate: Decimal
    status: TransactionStatus = TransactionStatus.PENDING
    payment_type: str = ""
    created_at: date | None = None

    @property
    def purchase_amount(self) -> Decimal:
        return (Decimal(self.quantity) * self.rate).quantize(CENTS, rounding=ROUND_HALF_UP)

    def to_record(self) -> dict[str, Any]:
        return StoredTransaction(
            id=self.id,
            name=self.name,
            category=self.category,
            supplier=self.supplier,
            quantity=self.quantity,
            rate=self.rate,
            status=self.status,
            payment_type=self.payment_type,
            created_at=self.created_at or date.today(),
        ).model_dump(mode="json")

    @classmethod
    def from_record(cls, raw: Any) -> Transaction:
        s = StoredTransaction.model_validate(raw)
        return cls(
            id=s.id,
            name=s.name,
            category=s.category,
            supplier=s.supplier,
            quantity=s.quantity,
            rate=s.rate,
            status=s.status,
            payment_type=s.payment_type,
            created_at=s.created_at,
        )


@dataclass(frozen=True, slots=True)
class SettlementRecord:
    """One payment in a transaction's history. Removed by position, never edited."""

    amount: Decimal
    date: date
    payment_type: str = ""

    def to_record(self) -> dict[str, Any]:
        return StoredSettlementEntry(
            amount=self.amount, date=self.date, payment_type=self.payment_type
        ).model_dump(mode="json")

    @classmethod
    def from_stored(cls, s: StoredSettlementEntry) -> SettlementRecord:
        return cls(amount=s.amount, date=s.date, payment_type=s.payment_type)


@dataclass(frozen=True, slots=True)
class ClampWarning:
    """A requested payment exceeded the remaining balance and was truncated.

    Informational only: the payment was still recorded with ``applied``.
    """

    transaction_id: str
    requested: Decimal
    applied: Decimal
    balance_before: Decimal

    @property
    def message(self) -> str:
        return (
            f"requested {self.requested} exceeds balance {self.balance_before}; "
            f"applied {self.applied}"
        )


@dataclass(frozen=True, slots=True)
class PaymentResult:
    new_total: Decimal
    new_balance: Decimal
    clamp: ClampWarning | None = None

    @property
    def clamped(self) -> bool:
        return self.clamp is not None


@dataclass(frozen=True, slots=True)
class LedgerSummary:
    total_purchase: Decimal
    total_settlement: Decimal
    total_balance: Decimal


__all__ = [
    "CENTS",
    "ZERO",
    "MAX_AMOUNT",
    "MAX_QUANTITY",
    "MAX_RATE",
    "parse_decimal",
    "PAYMENT_TYPES",
    "to_money",
    "TransactionStatus",
    "StoredTransaction",
    "StoredSettlementTotal",
    "StoredSettlementEntry",
    "StoredSettlementHistory",
    "StoredCatalogEntry",
    "Transaction",
    "SettlementRecord",
    "ClampWarning",
    "PaymentResult",
    "LedgerSummary",
]
