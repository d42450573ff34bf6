"""Settlement ledger for medicine purchases.

The ledger keeps three parallel collections in a store:

- ``transactions``: the purchases themselves;
- ``settlement_totals``: cumulative amount settled per transaction id;
- ``settlement_history``: ordered payments per transaction id.

Invariant: ``0 <= settlement_total[id] <= purchase_amount(id)`` after every
mutation. A missing total means zero and a missing history means empty.

Every mutation is read-modify-write: new state is computed on copies, the
affected collections go to the store in one ``save_many`` batch, and only then
does the in-memory view move forward. A
:class:`~medicine_ledger.errors.StoreUnavailableError` leaves both the store
and the view unchanged; callers that share the store with other editors should
:meth:`SettlementLedger.reload` before retrying. There is no locking:
concurrent editors get last-write-wins.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import ValidationError as SchemaError

from .errors import (
    OutOfRangeError,
    StoreUnavailableError,
    TransactionNotFoundError,
    ValidationError,
)
from .logging_setup import get_logger
from .models import (
    CENTS,
    MAX_AMOUNT,
    MAX_QUANTITY,
    MAX_RATE,
    ZERO,
    ClampWarning,
    LedgerSummary,
    PaymentResult,
    SettlementRecord,
    StoredSettlementHistory,
    StoredSettlementTotal,
    Transaction,
    TransactionStatus,
    parse_decimal,
)
from .store import SETTLEMENT_HISTORY, SETTLEMENT_TOTALS, TRANSACTIONS, LedgerStore

_logger = get_logger("medicine_ledger.ledger")

ID_PREFIX = "MEDTX"

# Zero is rejected together with missing values. Whether a zero-quantity or
# zero-rate purchase is legitimate is still an open product question.
ZERO_REJECTED_RULE = "quantity and rate must be provided and numeric; zero is currently rejected"


# ----------------------------------------------------------------------------
# Field validation
# ----------------------------------------------------------------------------


def _require_text(field: str, value: Any) -> str:
    text = " ".join(str(value).split()) if value is not None else ""
    if not text:
        raise ValidationError(field, value, "is required")
    return text


def _require_quantity(value: Any) -> int:
    d = parse_decimal(value)
    if d is None or d == 0:
        raise ValidationError("quantity", value, ZERO_REJECTED_RULE)
    if d < 0:
        raise ValidationError("quantity", value, "must not be negative")
    if d > MAX_QUANTITY:
        raise ValidationError("quantity", value, f"must be at most {MAX_QUANTITY}")
    if d != d.to_integral_value():
        raise ValidationError("quantity", value, "must be a whole number")
    return int(d)


def _require_rate(value: Any) -> Decimal:
    d = parse_decimal(value)
    if d is None:
        raise ValidationError("rate", value, ZERO_REJECTED_RULE)
    if d < 0:
        raise ValidationError("rate", value, "must not be negative")
    if d > MAX_RATE:
        raise ValidationError("rate", value, f"must be at most {MAX_RATE}")
    d = d.quantize(CENTS, rounding=ROUND_HALF_UP)
    if d == 0:
        raise ValidationError("rate", value, ZERO_REJECTED_RULE)
    return d


def _parse_status(value: Any) -> TransactionStatus:
    try:
        return TransactionStatus.parse(value)
    except ValueError:
        allowed = ", ".join(s.value for s in TransactionStatus)
        raise ValidationError("status", value, f"must be one of {allowed}") from None


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError("date", value, "must be a date in YYYY-MM-DD form")


def _coerce_payment(value: Any) -> Decimal:
    """Negative, missing and non-numeric payment amounts all count as zero.

    Amounts above ``MAX_AMOUNT`` are capped there; no purchase is that large,
    so they still clamp to the remaining balance.
    """

    d = parse_decimal(value)
    if d is None or d < 0:
        return ZERO
    if d > MAX_AMOUNT:
        return MAX_AMOUNT
    return d.quantize(CENTS, rounding=ROUND_HALF_UP)


# ----------------------------------------------------------------------------
# Pure aggregation
# ----------------------------------------------------------------------------


def compute_summary(
    transactions: Iterable[Transaction], totals: Mapping[str, Decimal]
) -> LedgerSummary:
    """Sum purchase, settlement and balance over ``transactions``.

    A transaction without an entry in ``totals`` counts as nothing settled.
    """

    total_purchase = ZERO
    total_settlement = ZERO
    for tx in transactions:
        total_purchase += tx.purchase_amount
        total_settlement += totals.get(tx.id, ZERO)
    return LedgerSummary(
        total_purchase=total_purchase,
        total_settlement=total_settlement,
        total_balance=total_purchase - total_settlement,
    )


# ----------------------------------------------------------------------------
# Ledger
# ----------------------------------------------------------------------------


class SettlementLedger:
    """Purchase/settlement bookkeeping over a :class:`LedgerStore`.

    Parameters
    ----------
    store:
        Where the three collections live. Loaded on construction.
    clock:
        Source of "now" for ids and creation dates; defaults to
        ``datetime.now``.
    """

    def __init__(
        self, store: LedgerStore, *, clock: Callable[[], datetime] | None = None
    ) -> None:
        self._store = store
        self._clock = clock or datetime.now
        self._transactions: list[Transaction] = []
        self._totals: dict[str, Decimal] = {}
        self._history: dict[str, tuple[SettlementRecord, ...]] = {}
        self.reload()

    # ---- loading -----------------------------------------------------------

    def reload(self) -> None:
        """Replace the in-memory view with the store's current contents."""

        try:
            transactions = [Transaction.from_record(r) for r in self._store.load(TRANSACTIONS)]
        except SchemaError as e:
            raise StoreUnavailableError(TRANSACTIONS, f"malformed record: {e}") from e
        try:
            totals = {
                s.transaction_id: s.amount
                for s in map(StoredSettlementTotal.model_validate, self._store.load(SETTLEMENT_TOTALS))
            }
        except SchemaError as e:
            raise StoreUnavailableError(SETTLEMENT_TOTALS, f"malformed record: {e}") from e
        try:
            history = {
                h.transaction_id: tuple(SettlementRecord.from_stored(e) for e in h.entries)
                for h in map(
                    StoredSettlementHistory.model_validate, self._store.load(SETTLEMENT_HISTORY)
                )
            }
        except SchemaError as e:
            raise StoreUnavailableError(SETTLEMENT_HISTORY, f"malformed record: {e}") from e

        self._transactions = transactions
        self._totals = totals
        self._history = history
        _logger.debug(
            "loaded %d transaction(s), %d total(s), %d history list(s)",
            len(transactions),
            len(totals),
            len(history),
        )

    # ---- reads -------------------------------------------------------------

    def transactions(self) -> list[Transaction]:
        return list(self._transactions)

    def get(self, transaction_id: str) -> Transaction:
        for tx in self._transactions:
            if tx.id == transaction_id:
                return tx
        raise TransactionNotFoundError(transaction_id)

    def settlement_total(self, transaction_id: str) -> Decimal:
        return self._totals.get(self.get(transaction_id).id, ZERO)

    def balance(self, transaction_id: str) -> Decimal:
        tx = self.get(transaction_id)
        return tx.purchase_amount - self._totals.get(tx.id, ZERO)

    def history(self, transaction_id: str) -> tuple[SettlementRecord, ...]:
        return self._history.get(self.get(transaction_id).id, ())

    def filter_transactions(
        self, search: str = "", status: TransactionStatus | str | None = None
    ) -> list[Transaction]:
        """Case-insensitive match on name or supplier, optionally by status.

        ``status`` of ``None`` or ``"all"`` matches every status.
        """

        needle = search.strip().lower()
        wanted: TransactionStatus | None = None
        if status is not None and str(status).strip().lower() != "all":
            wanted = _parse_status(status)
        return [
            tx
            for tx in self._transactions
            if (not needle or needle in tx.name.lower() or needle in tx.supplier.lower())
            and (wanted is None or tx.status is wanted)
        ]

    def compute_summary(self, transactions: Iterable[Transaction] | None = None) -> LedgerSummary:
        """Summary over ``transactions`` (default: all) using this ledger's totals."""

        return compute_summary(
            self._transactions if transactions is None else transactions, self._totals
        )

    # ---- mutations ---------------------------------------------------------

    def create_transaction(
        self,
        name: Any,
        category: Any,
        supplier: Any,
        quantity: Any,
        rate: Any,
    ) -> Transaction:
        """Add a Pending purchase with no settlement and an empty history."""

        tx = Transaction(
            id=self._new_id(),
            name=_require_text("name", name),
            category=_require_text("category", category),
            supplier=_require_text("supplier", supplier),
            quantity=_require_quantity(quantity),
            rate=_require_rate(rate),
            status=TransactionStatus.PENDING,
            payment_type="",
            created_at=self._clock().date(),
        )
        self._commit(transactions=[*self._transactions, tx])
        _logger.info("created %s (%s x %s)", tx.id, tx.quantity, tx.rate)
        return tx

    def update_transaction(
        self,
        transaction_id: str,
        *,
        name: Any = None,
        category: Any = None,
        supplier: Any = None,
        quantity: Any = None,
        rate: Any = None,
    ) -> Transaction:
        """Edit purchase details; omitted fields keep their value.

        An edit that would push the purchase amount below what has already
        been settled is rejected.
        """

        tx = self.get(transaction_id)
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = _require_text("name", name)
        if category is not None:
            changes["category"] = _require_text("category", category)
        if supplier is not None:
            changes["supplier"] = _require_text("supplier", supplier)
        if quantity is not None:
            changes["quantity"] = _require_quantity(quantity)
        if rate is not None:
            changes["rate"] = _require_rate(rate)
        updated = dataclasses.replace(tx, **changes)

        settled = self._totals.get(tx.id, ZERO)
        if updated.purchase_amount < settled:
            field = "quantity" if "quantity" in changes else "rate"
            raise ValidationError(
                field,
                changes.get(field),
                f"purchase amount {updated.purchase_amount} would fall below "
                f"the settled amount {settled}",
            )

        self._commit(transactions=self._replace(updated))
        _logger.info("updated %s fields=%s", tx.id, sorted(changes))
        return updated

    def record_payment(
        self,
        transaction_id: str,
        *,
        date: Any,
        payment_type: Any,
        status: Any,
        amount_to_add: Any,
    ) -> PaymentResult:
        """Apply a payment and/or edit date, payment type and status.

        ``amount_to_add`` is coerced to zero when negative or non-numeric and
        truncated so the cumulative total never exceeds the purchase amount;
        truncation is reported on the result as a :class:`ClampWarning`. The
        metadata fields are written even when nothing is paid. One history
        entry is appended when the applied amount is positive.
        """

        tx = self.get(transaction_id)
        when = _parse_date(date)
        new_status = _parse_status(status)
        label = " ".join(str(payment_type).split()) if payment_type is not None else ""
        requested = _coerce_payment(amount_to_add)

        purchase = tx.purchase_amount
        prior = self._totals.get(tx.id, ZERO)
        new_total = min(prior + requested, purchase)
        applied = max(new_total - prior, ZERO)

        clamp: ClampWarning | None = None
        if requested > applied:
            clamp = ClampWarning(
                transaction_id=tx.id,
                requested=requested,
                applied=applied,
                balance_before=max(purchase - prior, ZERO),
            )

        updated = dataclasses.replace(
            tx, created_at=when, payment_type=label, status=new_status
        )
        totals: dict[str, Decimal] | None = None
        history: dict[str, tuple[SettlementRecord, ...]] | None = None
        if new_total != prior:
            totals = {**self._totals, tx.id: new_total}
        if applied > 0:
            entry = SettlementRecord(amount=applied, date=when, payment_type=label)
            history = {**self._history, tx.id: (*self._history.get(tx.id, ()), entry)}

        self._commit(transactions=self._replace(updated), totals=totals, history=history)

        if clamp is not None:
            _logger.warning("clamped payment on %s: %s", tx.id, clamp.message)
        _logger.info(
            "payment on %s: applied=%s total=%s balance=%s status=%s",
            tx.id,
            applied,
            new_total,
            purchase - new_total,
            new_status.value,
        )
        return PaymentResult(new_total=new_total, new_balance=purchase - new_total, clamp=clamp)

    def delete_settlement_record(self, transaction_id: str, history_index: int) -> SettlementRecord:
        """Remove one history entry and recompute the total from what remains.

        The total is re-summed from the remaining entries rather than
        decremented, so any earlier drift between the two is repaired.
        """

        tx = self.get(transaction_id)
        entries = list(self._history.get(tx.id, ()))
        if (
            isinstance(history_index, bool)
            or not isinstance(history_index, int)
            or not 0 <= history_index < len(entries)
        ):
            raise OutOfRangeError(tx.id, history_index, len(entries))

        removed = entries.pop(history_index)
        recomputed = sum((e.amount for e in entries), ZERO)
        if recomputed > tx.purchase_amount:
            _logger.warning(
                "history of %s sums to %s, above purchase amount %s; capping",
                tx.id,
                recomputed,
                tx.purchase_amount,
            )
            recomputed = tx.purchase_amount

        self._commit(
            totals={**self._totals, tx.id: recomputed},
            history={**self._history, tx.id: tuple(entries)},
        )
        _logger.info(
            "deleted history[%d] of %s (%s); total now %s",
            history_index,
            tx.id,
            removed.amount,
            recomputed,
        )
        return removed

    # ---- internals ---------------------------------------------------------

    def _new_id(self) -> str:
        base = f"{ID_PREFIX}{int(self._clock().timestamp() * 1000)}"
        taken = {tx.id for tx in self._transactions}
        candidate, n = base, 0
        while candidate in taken:
            n += 1
            candidate = f"{base}-{n}"
        return candidate

    def _replace(self, updated: Transaction) -> list[Transaction]:
        return [updated if tx.id == updated.id else tx for tx in self._transactions]

    def _commit(
        self,
        *,
        transactions: list[Transaction] | None = None,
        totals: dict[str, Decimal] | None = None,
        history: dict[str, tuple[SettlementRecord, ...]] | None = None,
    ) -> None:
        batch: dict[str, list[dict[str, Any]]] = {}
        if history is not None:
            batch[SETTLEMENT_HISTORY] = [
                {"transaction_id": tx_id, "entries": [e.to_record() for e in entries]}
                for tx_id, entries in history.items()
            ]
        if totals is not None:
            batch[SETTLEMENT_TOTALS] = [
                StoredSettlementTotal(transaction_id=tx_id, amount=amount).model_dump(mode="json")
                for tx_id, amount in totals.items()
            ]
        if transactions is not None:
            batch[TRANSACTIONS] = [tx.to_record() for tx in transactions]
        try:
            self._store.save_many(batch)
        except StoreUnavailableError as e:
            _logger.error("mutation not applied: %s", e)
            raise

        if transactions is not None:
            self._transactions = transactions
        if totals is not None:
            self._totals = totals
        if history is not None:
            self._history = history


__all__ = [
    "ID_PREFIX",
    "ZERO_REJECTED_RULE",
    "SettlementLedger",
    "compute_summary",
]
