from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

import pytest
from medicine_ledger.errors import (
    OutOfRangeError,
    StoreUnavailableError,
    TransactionNotFoundError,
    ValidationError,
)
from medicine_ledger.ledger import ZERO_REJECTED_RULE, SettlementLedger, compute_summary
from medicine_ledger.models import (
    MAX_AMOUNT,
    MAX_QUANTITY,
    MAX_RATE,
    ClampWarning,
    TransactionStatus,
)
from medicine_ledger.store import (
    SETTLEMENT_HISTORY,
    SETTLEMENT_TOTALS,
    TRANSACTIONS,
    InMemoryStore,
)

D = Decimal


def _tx_record(tx_id: str, quantity: int, rate: str, **extra: Any) -> dict[str, Any]:
    rec = {
        "id": tx_id,
        "name": "Paracetamol 500mg",
        "category": "Analgesics",
        "supplier": "Sun Pharma",
        "quantity": quantity,
        "rate": rate,
        "status": "Pending",
        "payment_type": "",
        "created_at": "2025-01-01",
    }
    rec.update(extra)
    return rec


def _seeded(
    *, quantity: int, rate: str, total: str | None = None, history: list[str] | None = None
) -> tuple[InMemoryStore, SettlementLedger]:
    initial: dict[str, list[dict[str, Any]]] = {TRANSACTIONS: [_tx_record("T1", quantity, rate)]}
    if total is not None:
        initial[SETTLEMENT_TOTALS] = [{"transaction_id": "T1", "amount": total}]
    if history is not None:
        initial[SETTLEMENT_HISTORY] = [
            {
                "transaction_id": "T1",
                "entries": [
                    {"amount": a, "date": "2025-01-0%d" % (i + 1), "payment_type": "Cash"}
                    for i, a in enumerate(history)
                ],
            }
        ]
    store = InMemoryStore(initial)
    return store, SettlementLedger(store)


def _assert_invariant(ledger: SettlementLedger) -> None:
    for tx in ledger.transactions():
        assert D("0") <= ledger.settlement_total(tx.id) <= tx.purchase_amount


# ---------------------------------------------------------------------------
# create / update
# ---------------------------------------------------------------------------


def test_create_transaction_defaults(ledger: SettlementLedger, store: InMemoryStore):
    tx = ledger.create_transaction("  Amoxicillin   250mg ", "Antibiotics", "Cipla", "10", "12.5")

    assert tx.id.startswith("MEDTX")
    assert tx.name == "Amoxicillin 250mg"
    assert tx.quantity == 10
    assert tx.rate == D("12.50")
    assert tx.purchase_amount == D("125.00")
    assert tx.status is TransactionStatus.PENDING
    assert tx.payment_type == ""
    assert tx.created_at == date(2025, 1, 15)

    # No settlement bookkeeping exists until the first payment.
    assert ledger.settlement_total(tx.id) == D("0")
    assert ledger.history(tx.id) == ()
    assert store.load(SETTLEMENT_TOTALS) == []
    assert store.load(SETTLEMENT_HISTORY) == []
    assert [r["id"] for r in store.load(TRANSACTIONS)] == [tx.id]


def test_create_transaction_ids_are_unique_under_a_frozen_clock(ledger: SettlementLedger):
    a = ledger.create_transaction("A", "C", "S", 1, 1)
    b = ledger.create_transaction("B", "C", "S", 1, 1)
    assert a.id != b.id
    assert b.id == f"{a.id}-1"


@pytest.mark.parametrize(
    ("field", "kwargs"),
    [
        ("name", {"name": "   "}),
        ("category", {"category": ""}),
        ("supplier", {"supplier": None}),
    ],
)
def test_create_transaction_requires_text_fields(ledger, store, field, kwargs):
    args = {"name": "N", "category": "C", "supplier": "S", "quantity": 1, "rate": 1}
    args.update(kwargs)
    with pytest.raises(ValidationError) as ei:
        ledger.create_transaction(**args)
    assert ei.value.field == field
    assert store.save_count == 0


@pytest.mark.parametrize("quantity", [0, "0", "", None, "abc", "NaN"])
def test_zero_or_missing_quantity_is_rejected_by_named_rule(ledger, store, quantity):
    with pytest.raises(ValidationError) as ei:
        ledger.create_transaction("N", "C", "S", quantity, "5")
    assert ei.value.field == "quantity"
    assert ei.value.message == ZERO_REJECTED_RULE
    assert store.save_count == 0


@pytest.mark.parametrize("rate", [0, "0.00", "", None, "ten"])
def test_zero_or_missing_rate_is_rejected_by_named_rule(ledger, rate):
    with pytest.raises(ValidationError) as ei:
        ledger.create_transaction("N", "C", "S", 3, rate)
    assert ei.value.field == "rate"
    assert ei.value.message == ZERO_REJECTED_RULE


def test_negative_and_fractional_values_are_rejected(ledger):
    with pytest.raises(ValidationError, match="negative"):
        ledger.create_transaction("N", "C", "S", -1, 5)
    with pytest.raises(ValidationError, match="negative"):
        ledger.create_transaction("N", "C", "S", 1, "-5")
    with pytest.raises(ValidationError, match="whole number"):
        ledger.create_transaction("N", "C", "S", "2.5", 5)


@pytest.mark.parametrize(
    ("quantity", "rate", "field"),
    [
        (10**27, "5", "quantity"),
        ("1e30", "5", "quantity"),
        (MAX_QUANTITY + 1, "5", "quantity"),
        (1, "1e27", "rate"),
        (1, MAX_RATE + D("0.01"), "rate"),
    ],
)
def test_huge_quantity_or_rate_is_rejected(ledger, store, quantity, rate, field):
    with pytest.raises(ValidationError, match="at most") as ei:
        ledger.create_transaction("N", "C", "S", quantity, rate)
    assert ei.value.field == field
    assert store.save_count == 0


def test_largest_quantity_and_rate_fit_the_money_bounds(ledger):
    tx = ledger.create_transaction("N", "C", "S", MAX_QUANTITY, MAX_RATE)
    assert tx.purchase_amount == MAX_QUANTITY * MAX_RATE
    assert tx.purchase_amount <= MAX_AMOUNT


def test_rate_that_rounds_to_zero_is_rejected_by_named_rule(ledger):
    with pytest.raises(ValidationError) as ei:
        ledger.create_transaction("N", "C", "S", 3, "0.001")
    assert ei.value.message == ZERO_REJECTED_RULE


def test_update_transaction_rejects_huge_rate():
    store, ledger = _seeded(quantity=10, rate="100")
    with pytest.raises(ValidationError) as ei:
        ledger.update_transaction("T1", rate="1e27")
    assert ei.value.field == "rate"
    assert ledger.get("T1").rate == D("100.00")
    assert store.save_count == 0


def test_update_transaction_changes_only_given_fields():
    _, ledger = _seeded(quantity=10, rate="100")
    updated = ledger.update_transaction("T1", supplier="Mankind", rate="110")

    assert updated.supplier == "Mankind"
    assert updated.rate == D("110.00")
    assert updated.name == "Paracetamol 500mg"
    assert updated.quantity == 10
    assert ledger.get("T1") == updated


def test_update_transaction_cannot_drop_below_settled_amount():
    store, ledger = _seeded(quantity=10, rate="100", total="800", history=["800"])
    saves = store.save_count

    with pytest.raises(ValidationError) as ei:
        ledger.update_transaction("T1", quantity=5)
    assert ei.value.field == "quantity"
    assert ledger.get("T1").quantity == 10
    assert store.save_count == saves

    # Exactly the settled amount is still fine.
    assert ledger.update_transaction("T1", quantity=8).purchase_amount == D("800.00")
    _assert_invariant(ledger)


def test_unknown_transaction_id(ledger: SettlementLedger):
    with pytest.raises(TransactionNotFoundError) as ei:
        ledger.record_payment(
            "nope", date="2025-01-01", payment_type="Cash", status="Pending", amount_to_add=1
        )
    assert isinstance(ei.value, ValidationError)
    assert ei.value.field == "transaction_id"


# ---------------------------------------------------------------------------
# record_payment
# ---------------------------------------------------------------------------


def test_clamp_law():
    _, ledger = _seeded(quantity=10, rate="100", total="800", history=["800"])

    result = ledger.record_payment(
        "T1", date="2025-01-20", payment_type="UPI", status="Pending", amount_to_add=500
    )

    assert result.new_total == D("1000.00")
    assert result.new_balance == D("0.00")
    assert result.clamped
    assert result.clamp == ClampWarning(
        transaction_id="T1",
        requested=D("500.00"),
        applied=D("200.00"),
        balance_before=D("200.00"),
    )
    # History records what was applied, not what was requested.
    assert [e.amount for e in ledger.history("T1")] == [D("800.00"), D("200.00")]
    _assert_invariant(ledger)


def test_clamp_on_fully_settled_transaction_appends_nothing():
    _, ledger = _seeded(quantity=10, rate="100", total="1000", history=["1000"])

    result = ledger.record_payment(
        "T1", date="2025-01-20", payment_type="Cash", status="Completed", amount_to_add=50
    )

    assert result.clamp is not None
    assert result.clamp.applied == D("0.00")
    assert len(ledger.history("T1")) == 1
    assert ledger.get("T1").status is TransactionStatus.COMPLETED


def test_metadata_only_edit():
    store, ledger = _seeded(quantity=10, rate="100", total="300", history=["300"])

    result = ledger.record_payment(
        "T1", date="2025-01-01", payment_type="UPI", status="Completed", amount_to_add=0
    )

    tx = ledger.get("T1")
    assert tx.created_at == date(2025, 1, 1)
    assert tx.payment_type == "UPI"
    assert tx.status is TransactionStatus.COMPLETED
    assert result.new_total == D("300.00")
    assert result.clamp is None
    assert [e.amount for e in ledger.history("T1")] == [D("300.00")]
    # Totals were not rewritten.
    assert store.load(SETTLEMENT_TOTALS) == [{"transaction_id": "T1", "amount": "300"}]


@pytest.mark.parametrize("amount", [-50, "-1", "abc", None, ""])
def test_negative_or_non_numeric_payment_counts_as_zero(amount):
    _, ledger = _seeded(quantity=10, rate="100")

    result = ledger.record_payment(
        "T1", date="2025-01-02", payment_type="Cash", status="Pending", amount_to_add=amount
    )

    assert result.new_total == D("0")
    assert result.new_balance == D("1000.00")
    assert result.clamp is None
    assert ledger.history("T1") == ()


@pytest.mark.parametrize("amount", ["1e30", D("1e27"), "9" * 40])
def test_huge_payment_clamps_to_the_balance(amount):
    _, ledger = _seeded(quantity=10, rate="100", total="250", history=["250"])

    result = ledger.record_payment(
        "T1", date="2025-01-20", payment_type="NEFT", status="Completed", amount_to_add=amount
    )

    assert result.new_total == D("1000.00")
    assert result.new_balance == D("0.00")
    assert result.clamp is not None
    assert result.clamp.requested == MAX_AMOUNT
    assert result.clamp.applied == D("750.00")
    assert [e.amount for e in ledger.history("T1")] == [D("250.00"), D("750.00")]
    _assert_invariant(ledger)


def test_record_payment_accepts_status_in_any_case_and_rejects_unknown():
    _, ledger = _seeded(quantity=1, rate="10")
    ledger.record_payment(
        "T1", date="2025-01-02", payment_type="Card", status="cancelled", amount_to_add=0
    )
    assert ledger.get("T1").status is TransactionStatus.CANCELLED

    with pytest.raises(ValidationError) as ei:
        ledger.record_payment(
            "T1", date="2025-01-02", payment_type="Card", status="Refunded", amount_to_add=0
        )
    assert ei.value.field == "status"


def test_record_payment_rejects_bad_date():
    _, ledger = _seeded(quantity=1, rate="10")
    with pytest.raises(ValidationError) as ei:
        ledger.record_payment(
            "T1", date="15/01/2025", payment_type="Cash", status="Pending", amount_to_add=5
        )
    assert ei.value.field == "date"
    assert ledger.history("T1") == ()


def test_status_is_never_changed_automatically():
    _, ledger = _seeded(quantity=2, rate="50")
    result = ledger.record_payment(
        "T1", date="2025-01-02", payment_type="Cash", status="Pending", amount_to_add=100
    )
    assert result.new_balance == D("0.00")
    assert ledger.get("T1").status is TransactionStatus.PENDING


# ---------------------------------------------------------------------------
# delete_settlement_record
# ---------------------------------------------------------------------------


def test_delete_recomputes_total_from_history_even_when_out_of_sync():
    # Total is deliberately wrong (600 instead of 500).
    _, ledger = _seeded(quantity=10, rate="100", total="600", history=["300", "200"])

    removed = ledger.delete_settlement_record("T1", 0)

    assert removed.amount == D("300.00")
    assert [e.amount for e in ledger.history("T1")] == [D("200.00")]
    assert ledger.settlement_total("T1") == D("200.00")
    assert ledger.balance("T1") == D("800.00")


def test_delete_last_entry_leaves_zero_total():
    store, ledger = _seeded(quantity=10, rate="100", total="300", history=["300"])
    ledger.delete_settlement_record("T1", 0)
    assert ledger.settlement_total("T1") == D("0")
    assert ledger.history("T1") == ()
    assert store.load(SETTLEMENT_HISTORY) == [{"transaction_id": "T1", "entries": []}]


def test_delete_caps_corrupt_history_at_purchase_amount():
    _, ledger = _seeded(quantity=1, rate="100", total="100", history=["90", "80", "10"])
    ledger.delete_settlement_record("T1", 2)
    assert ledger.settlement_total("T1") == D("100.00")
    _assert_invariant(ledger)


@pytest.mark.parametrize("index", [99, 2, -1, True, "0", 1.0])
def test_delete_rejects_out_of_range_index(index):
    store, ledger = _seeded(quantity=10, rate="100", total="500", history=["300", "200"])
    saves = store.save_count

    with pytest.raises(OutOfRangeError) as ei:
        ledger.delete_settlement_record("T1", index)

    assert ei.value.size == 2
    assert [e.amount for e in ledger.history("T1")] == [D("300.00"), D("200.00")]
    assert ledger.settlement_total("T1") == D("500.00")
    assert store.save_count == saves


# ---------------------------------------------------------------------------
# summary / filters
# ---------------------------------------------------------------------------


def test_compute_summary_is_idempotent_and_treats_missing_totals_as_zero(ledger):
    a = ledger.create_transaction("A", "C", "S", 2, "100")
    ledger.create_transaction("B", "C", "S", 1, "50")
    ledger.record_payment(
        a.id, date="2025-01-16", payment_type="Cash", status="Pending", amount_to_add=120
    )

    first = ledger.compute_summary()
    second = ledger.compute_summary()

    assert first == second
    assert first.total_purchase == D("250.00")
    assert first.total_settlement == D("120.00")
    assert first.total_balance == D("130.00")


def test_module_level_compute_summary_over_empty_input():
    s = compute_summary([], {})
    assert (s.total_purchase, s.total_settlement, s.total_balance) == (0, 0, 0)


def test_filter_transactions_by_search_and_status(ledger):
    a = ledger.create_transaction("Insulin", "Hormones", "Novo Nordisk", 1, 400)
    b = ledger.create_transaction("Cetirizine", "Antihistamines", "Cipla", 1, 20)
    ledger.record_payment(
        b.id, date="2025-01-16", payment_type="UPI", status="Completed", amount_to_add=0
    )

    assert ledger.filter_transactions("cipla") == [ledger.get(b.id)]
    assert ledger.filter_transactions("INSU") == [a]
    assert ledger.filter_transactions(status="completed") == [ledger.get(b.id)]
    assert len(ledger.filter_transactions(status="all")) == 2
    assert ledger.filter_transactions("insulin", TransactionStatus.COMPLETED) == []
    with pytest.raises(ValidationError):
        ledger.filter_transactions(status="archived")


# ---------------------------------------------------------------------------
# persistence failures
# ---------------------------------------------------------------------------


def test_failed_save_leaves_ledger_view_unchanged():
    store, ledger = _seeded(quantity=10, rate="100", total="200", history=["200"])
    store.fail_next_save = True

    with pytest.raises(StoreUnavailableError) as ei:
        ledger.record_payment(
            "T1", date="2025-01-20", payment_type="UPI", status="Completed", amount_to_add=100
        )

    assert ei.value.collection == SETTLEMENT_HISTORY
    assert ledger.settlement_total("T1") == D("200.00")
    assert len(ledger.history("T1")) == 1
    assert ledger.get("T1").status is TransactionStatus.PENDING

    # Retrying after the outage applies the payment once.
    ledger.reload()
    result = ledger.record_payment(
        "T1", date="2025-01-20", payment_type="UPI", status="Completed", amount_to_add=100
    )
    assert result.new_total == D("300.00")


def test_failure_on_a_later_collection_commits_nothing():
    store, ledger = _seeded(quantity=10, rate="100", total="200", history=["200"])
    before = {name: store.load(name) for name in (TRANSACTIONS, SETTLEMENT_TOTALS, SETTLEMENT_HISTORY)}
    saves = store.save_count
    store.fail_collection = SETTLEMENT_TOTALS

    with pytest.raises(StoreUnavailableError) as ei:
        ledger.record_payment(
            "T1", date="2025-01-20", payment_type="UPI", status="Completed", amount_to_add=100
        )

    assert ei.value.collection == SETTLEMENT_TOTALS
    # History comes first in the batch and still was not written.
    assert {name: store.load(name) for name in before} == before
    assert store.save_count == saves
    assert ledger.settlement_total("T1") == D("200.00")
    assert len(ledger.history("T1")) == 1
    assert ledger.get("T1").status is TransactionStatus.PENDING

    # The injected failure is one-shot; the same payment now lands once.
    result = ledger.record_payment(
        "T1", date="2025-01-20", payment_type="UPI", status="Completed", amount_to_add=100
    )
    assert result.new_total == D("300.00")
    assert [r["amount"] for r in store.load(SETTLEMENT_TOTALS)] == ["300.00"]
    assert len(store.load(SETTLEMENT_HISTORY)[0]["entries"]) == 2


def test_reload_reports_malformed_records_as_store_failure():
    store = InMemoryStore({TRANSACTIONS: [{"id": "T1", "name": "x"}]})
    with pytest.raises(StoreUnavailableError) as ei:
        SettlementLedger(store)
    assert ei.value.collection == TRANSACTIONS


# ---------------------------------------------------------------------------
# end to end
# ---------------------------------------------------------------------------


def test_end_to_end_partial_then_clamped_settlement(ledger, store):
    tx = ledger.create_transaction("Azithromycin", "Antibiotics", "Alkem", 10, 50)
    assert tx.purchase_amount == D("500.00")

    first = ledger.record_payment(
        tx.id, date="2025-01-16", payment_type="Cash", status="Pending", amount_to_add=200
    )
    assert (first.new_total, first.new_balance, first.clamp) == (D("200.00"), D("300.00"), None)

    second = ledger.record_payment(
        tx.id, date="2025-01-17", payment_type="UPI", status="Completed", amount_to_add=400
    )
    assert (second.new_total, second.new_balance) == (D("500.00"), D("0.00"))
    assert isinstance(second.clamp, ClampWarning)

    s = ledger.compute_summary([ledger.get(tx.id)])
    assert (s.total_purchase, s.total_settlement, s.total_balance) == (
        D("500.00"),
        D("500.00"),
        D("0.00"),
    )
    _assert_invariant(ledger)

    # A fresh ledger over the same store sees the same state.
    again = SettlementLedger(store)
    assert again.settlement_total(tx.id) == D("500.00")
    assert [e.amount for e in again.history(tx.id)] == [D("200.00"), D("300.00")]
