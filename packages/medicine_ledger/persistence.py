# ruff: noqa: I001
"""Database-backed store for the settlement ledger.

Each ledger collection maps onto one table owned by ``libs/db``
(``db.models.pharmacy``); sessions come from ``db.client``. ``save`` keeps the
store contract's full-overwrite semantics: inside one transaction it deletes
every row of the collection and inserts the new records in order, so a failed
save leaves the previous contents untouched. ``save_many`` runs every
collection of a batch in that same single transaction.

Scope:
- ``transactions`` -> ``ml_transactions``
- ``settlement_totals`` -> ``ml_settlement_totals``
- ``settlement_history`` -> ``ml_settlement_history`` (one row per payment)
- ``categories`` / ``suppliers`` -> ``ml_catalog_entries`` keyed by ``kind``
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from itertools import groupby
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.client import get_engine, session_scope
from db.models.pharmacy import (
    MlCatalogEntry,
    MlSettlementEntry,
    MlSettlementTotal,
    MlTransaction,
)
from .errors import StoreUnavailableError
from .logging_setup import get_logger
from .store import (
    CATEGORIES,
    SETTLEMENT_HISTORY,
    SETTLEMENT_TOTALS,
    SUPPLIERS,
    TRANSACTIONS,
    check_collection,
)

_logger = get_logger("medicine_ledger.persistence")

type _Records = list[dict[str, Any]]


def _to_decimal_2(raw: Any) -> Decimal:
    try:
        d = Decimal(str(raw))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"not a decimal amount: {raw!r}") from e
    return d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _to_date(raw: Any) -> date:
    if isinstance(raw, date):
        return raw
    # Expect YYYY-MM-DD
    return date.fromisoformat(str(raw).strip())


def _money_str(d: Decimal) -> str:
    return f"{d:.2f}"


# ---------------------------
# Loaders
# ---------------------------


def _load_transactions(session: Session) -> _Records:
    rows = session.scalars(select(MlTransaction).order_by(MlTransaction.position)).all()
    return [
        {
            "id": r.id,
            "name": r.name,
            "category": r.category,
            "supplier": r.supplier,
            "quantity": r.quantity,
            "rate": _money_str(r.rate),
            "status": r.status,
            "payment_type": r.payment_type,
            "created_at": r.created_at.isoformat(),
        }
        for r in rows
    ]


def _load_totals(session: Session) -> _Records:
    rows = session.scalars(
        select(MlSettlementTotal).order_by(MlSettlementTotal.position)
    ).all()
    return [{"transaction_id": r.transaction_id, "amount": _money_str(r.amount)} for r in rows]


def _load_history(session: Session) -> _Records:
    rows = session.scalars(
        select(MlSettlementEntry).order_by(
            MlSettlementEntry.group_position, MlSettlementEntry.entry_position
        )
    ).all()
    out: _Records = []
    for tx_id, group in groupby(rows, key=lambda r: r.transaction_id):
        out.append(
            {
                "transaction_id": tx_id,
                "entries": [
                    {
                        "amount": _money_str(r.amount),
                        "date": r.date.isoformat(),
                        "payment_type": r.payment_type,
                    }
                    for r in group
                ],
            }
        )
    return out


def _catalog_loader(kind: str) -> Callable[[Session], _Records]:
    def _load(session: Session) -> _Records:
        rows = session.scalars(
            select(MlCatalogEntry)
            .where(MlCatalogEntry.kind == kind)
            .order_by(MlCatalogEntry.position)
        ).all()
        return [{"name": r.name} for r in rows]

    return _load


# ---------------------------
# Savers (delete-all + ordered insert)
# ---------------------------


def _save_transactions(session: Session, records: Sequence[Mapping[str, Any]]) -> None:
    session.execute(delete(MlTransaction))
    session.add_all(
        MlTransaction(
            id=str(rec["id"]),
            position=pos,
            name=str(rec["name"]),
            category=str(rec["category"]),
            supplier=str(rec["supplier"]),
            quantity=int(rec["quantity"]),
            rate=_to_decimal_2(rec["rate"]),
            status=str(rec.get("status") or "Pending"),
            payment_type=str(rec.get("payment_type") or ""),
            created_at=_to_date(rec["created_at"]),
        )
        for pos, rec in enumerate(records)
    )


def _save_totals(session: Session, records: Sequence[Mapping[str, Any]]) -> None:
    session.execute(delete(MlSettlementTotal))
    session.add_all(
        MlSettlementTotal(
            transaction_id=str(rec["transaction_id"]),
            position=pos,
            amount=_to_decimal_2(rec["amount"]),
        )
        for pos, rec in enumerate(records)
    )


def _save_history(session: Session, records: Sequence[Mapping[str, Any]]) -> None:
    session.execute(delete(MlSettlementEntry))
    for group_pos, rec in enumerate(records):
        tx_id = str(rec["transaction_id"])
        for entry_pos, entry in enumerate(rec.get("entries") or []):
            session.add(
                MlSettlementEntry(
                    transaction_id=tx_id,
                    group_position=group_pos,
                    entry_position=entry_pos,
                    amount=_to_decimal_2(entry["amount"]),
                    date=_to_date(entry["date"]),
                    payment_type=str(entry.get("payment_type") or ""),
                )
            )


def _catalog_saver(kind: str) -> Callable[[Session, Sequence[Mapping[str, Any]]], None]:
    def _save(session: Session, records: Sequence[Mapping[str, Any]]) -> None:
        session.execute(delete(MlCatalogEntry).where(MlCatalogEntry.kind == kind))
        session.add_all(
            MlCatalogEntry(kind=kind, name=str(rec["name"]), position=pos)
            for pos, rec in enumerate(records)
        )

    return _save


_LOADERS: dict[str, Callable[[Session], _Records]] = {
    TRANSACTIONS: _load_transactions,
    SETTLEMENT_TOTALS: _load_totals,
    SETTLEMENT_HISTORY: _load_history,
    CATEGORIES: _catalog_loader(CATEGORIES),
    SUPPLIERS: _catalog_loader(SUPPLIERS),
}

_SAVERS: dict[str, Callable[[Session, Sequence[Mapping[str, Any]]], None]] = {
    TRANSACTIONS: _save_transactions,
    SETTLEMENT_TOTALS: _save_totals,
    SETTLEMENT_HISTORY: _save_history,
    CATEGORIES: _catalog_saver(CATEGORIES),
    SUPPLIERS: _catalog_saver(SUPPLIERS),
}


class SqlAlchemyStore:
    """Ledger store backed by the SQL database at ``DATABASE_URL``.

    Parameters
    ----------
    database_url:
        Optional override; falls back to ``DATABASE_URL``. The engine is
        created eagerly so a missing URL fails at construction time with
        ``RuntimeError`` rather than on the first ledger operation.
    """

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url
        get_engine(database_url=database_url)

    def load(self, collection: str) -> list[dict[str, Any]]:
        loader = _LOADERS[check_collection(collection)]
        try:
            with session_scope(database_url=self._database_url) as session:
                return loader(session)
        except SQLAlchemyError as e:
            _logger.error("load of %s failed: %s", collection, e)
            raise StoreUnavailableError(collection, str(e)) from e

    def save(self, collection: str, records: Sequence[Mapping[str, Any]]) -> None:
        self.save_many({collection: records})

    def save_many(self, batch: Mapping[str, Sequence[Mapping[str, Any]]]) -> None:
        """Overwrite every collection in ``batch`` inside one transaction."""

        savers = [(name, _SAVERS[check_collection(name)]) for name in batch]
        current = next(iter(batch), "")
        try:
            with session_scope(database_url=self._database_url) as session:
                for name, saver in savers:
                    current = name
                    saver(session, batch[name])
                    # Flush per collection so a failure names the right one.
                    session.flush()
        except SQLAlchemyError as e:
            _logger.error("save of %s failed: %s", current, e)
            raise StoreUnavailableError(current, str(e)) from e
        _logger.debug(
            "saved %s",
            ", ".join(f"{len(records)} {name} record(s)" for name, records in batch.items()),
        )


__all__ = ["SqlAlchemyStore"]
