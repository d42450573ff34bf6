# ruff: noqa: I001
"""CLI for the ``medicine_ledger`` package.

A Typer console interface over :class:`~medicine_ledger.ledger.SettlementLedger`.
It plays the part the purchase screen played: it collects input, calls the
ledger, and turns results and errors into operator notifications. Business
rules live in ``medicine_ledger.ledger``.

Configuration
-------------
A local ``.env`` is loaded (without overriding the environment) before any
command runs. Then, in order of precedence:

- ``--store`` / ``MEDICINE_LEDGER_STORE``: ``json`` (default) or ``sql``.
  Passing ``--database-url`` alone implies ``sql``.
- ``--data-dir`` / ``MEDICINE_LEDGER_DATA_DIR``: JSON store directory
  (default ``./.ledger``).
- ``--database-url`` / ``DATABASE_URL``: SQL store connection.
"""

import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .catalog import Catalog, CatalogKind
from .errors import LedgerError
from .ledger import SettlementLedger
from .logging_setup import configure_logging, get_logger, level_from_verbosity
from .models import PAYMENT_TYPES, Transaction, TransactionStatus
from .notify import ConsoleNotifier, Notification, Notifier
from .reporting import export_csv, format_currency
from .store import CATEGORIES, SUPPLIERS, JsonFileStore, LedgerStore
from .term_ui import select_option

DEFAULT_DATA_DIR = ".ledger"
STORE_KINDS = ("json", "sql")

_logger = get_logger("medicine_ledger.cli")


# ---- Store resolution ---------------------------------------------------------


def _resolve_store_kind(store: str | None, database_url: str | None) -> str:
    kind = store or os.getenv("MEDICINE_LEDGER_STORE") or ("sql" if database_url else "json")
    kind = kind.strip().lower()
    if kind not in STORE_KINDS:
        raise typer.BadParameter(
            f"unknown store {kind!r}; expected one of {', '.join(STORE_KINDS)}",
            param_hint="--store",
        )
    return kind


def _resolve_data_dir(data_dir: Path | None) -> Path:
    if data_dir is not None:
        return data_dir
    env_dir = os.getenv("MEDICINE_LEDGER_DATA_DIR")
    if env_dir and env_dir.strip():
        return Path(env_dir.strip())
    return Path.cwd() / DEFAULT_DATA_DIR


def open_store(kind: str, *, data_dir: Path, database_url: str | None = None) -> LedgerStore:
    """Build the store selected on the command line."""

    if kind == "sql":
        if not (database_url or os.getenv("DATABASE_URL")):
            raise typer.BadParameter(
                "the sql store needs --database-url or DATABASE_URL",
                param_hint="--database-url",
            )
        # Deferred import keeps the database stack out of JSON-only runs.
        from .persistence import SqlAlchemyStore

        return SqlAlchemyStore(database_url=database_url)
    return JsonFileStore(data_dir)


def _make_notifier(console: Console) -> Notifier:
    return ConsoleNotifier(console)


@dataclass
class _CliState:
    store_kind: str
    data_dir: Path
    database_url: str | None
    console: Console
    notifier: Notifier
    _store: LedgerStore | None = None

    def store(self) -> LedgerStore:
        if self._store is None:
            self._store = open_store(
                self.store_kind, data_dir=self.data_dir, database_url=self.database_url
            )
        return self._store

    def ledger(self) -> SettlementLedger:
        return SettlementLedger(self.store())

    def catalog(self) -> Catalog:
        return Catalog(self.store())

    def info(self, title: str, description: str) -> None:
        self.notifier.notify(Notification(title, description, "info"))

    def fail(self, title: str, description: str) -> None:
        self.notifier.notify(Notification(title, description, "destructive"))


@contextmanager
def _reporting_errors(state: _CliState) -> Iterator[None]:
    """Turn ledger errors into a destructive notification and exit status 1."""

    try:
        yield
    except LedgerError as e:
        _logger.debug("command failed: %r", e)
        state.fail("Error", str(e))
        raise typer.Exit(1) from e


def _interactive() -> bool:
    return sys.stdin.isatty()


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Medicine purchase ledger: record purchases, settle them in one or more "
        "payments, and review balances."
    ),
)


@app.callback()
def _root(
    ctx: typer.Context,
    store: Annotated[
        str | None, typer.Option("--store", help="Store backend: json (default) or sql.")
    ] = None,
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", help="Directory for the JSON store.", file_okay=False),
    ] = None,
    database_url: Annotated[
        str | None, typer.Option("--database-url", help="Override DATABASE_URL.")
    ] = None,
    verbose: Annotated[
        int, typer.Option("--verbose", "-v", count=True, help="Repeat for more logging.")
    ] = 0,
) -> None:
    """Load ``.env``, configure logging and resolve the store for subcommands."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(level_from_verbosity(verbose))

    console = Console()
    ctx.obj = _CliState(
        store_kind=_resolve_store_kind(store, database_url),
        data_dir=_resolve_data_dir(data_dir),
        database_url=database_url,
        console=console,
        notifier=_make_notifier(console),
    )


def _transactions_table(ledger: SettlementLedger, rows: list[Transaction]) -> Table:
    table = Table(title="Medicine Purchases")
    for col in (
        "ID",
        "Name",
        "Category",
        "Supplier",
        "Qty",
        "Rate",
        "Purchase",
        "Settled",
        "Balance",
        "Status",
        "Payment",
    ):
        justify = "right" if col in {"Qty", "Rate", "Purchase", "Settled", "Balance"} else "left"
        table.add_column(col, justify=justify, no_wrap=col == "ID")
    for tx in rows:
        settled = ledger.settlement_total(tx.id)
        table.add_row(
            tx.id,
            tx.name,
            tx.category,
            tx.supplier,
            str(tx.quantity),
            format_currency(tx.rate),
            format_currency(tx.purchase_amount),
            format_currency(settled),
            format_currency(tx.purchase_amount - settled),
            tx.status.value,
            tx.payment_type or "-",
        )
    return table


@app.command("add")
def add_cmd(
    ctx: typer.Context,
    name: Annotated[str, typer.Option(help="Medicine name.")],
    category: Annotated[str, typer.Option(help="Medicine category.")],
    supplier: Annotated[str, typer.Option(help="Supplier name.")],
    quantity: Annotated[str, typer.Option(help="Units purchased (whole number).")],
    rate: Annotated[str, typer.Option(help="Price per unit.")],
) -> None:
    """Record a new purchase (status Pending, nothing settled).

    Once the category or supplier list has entries, the value must be one of them.
    """

    state: _CliState = ctx.obj
    with _reporting_errors(state):
        catalog = state.catalog()
        category = catalog.resolve(CATEGORIES, category)
        supplier = catalog.resolve(SUPPLIERS, supplier)
        tx = state.ledger().create_transaction(name, category, supplier, quantity, rate)
    state.info("Added", f"Medicine {tx.name} added successfully")
    state.console.print(f"{tx.id}\t{format_currency(tx.purchase_amount)}")


@app.command("edit")
def edit_cmd(
    ctx: typer.Context,
    transaction_id: Annotated[str, typer.Argument(help="Transaction id.")],
    name: Annotated[str | None, typer.Option(help="New medicine name.")] = None,
    category: Annotated[str | None, typer.Option(help="New category.")] = None,
    supplier: Annotated[str | None, typer.Option(help="New supplier.")] = None,
    quantity: Annotated[str | None, typer.Option(help="New quantity.")] = None,
    rate: Annotated[str | None, typer.Option(help="New rate.")] = None,
) -> None:
    """Change the details of an existing purchase."""

    state: _CliState = ctx.obj
    with _reporting_errors(state):
        catalog = state.catalog()
        if category is not None:
            category = catalog.resolve(CATEGORIES, category)
        if supplier is not None:
            supplier = catalog.resolve(SUPPLIERS, supplier)
        tx = state.ledger().update_transaction(
            transaction_id,
            name=name,
            category=category,
            supplier=supplier,
            quantity=quantity,
            rate=rate,
        )
    state.info("Updated", f"Medicine {tx.name} updated successfully")


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    search: Annotated[str, typer.Option(help="Match name or supplier.")] = "",
    status: Annotated[
        str, typer.Option(help="Pending, Completed, Cancelled or all.")
    ] = "all",
) -> None:
    """List purchases with their settlement and balance."""

    state: _CliState = ctx.obj
    with _reporting_errors(state):
        ledger = state.ledger()
        rows = ledger.filter_transactions(search, status)
    if not rows:
        state.console.print("No transactions found.")
        return
    state.console.print(_transactions_table(ledger, rows))


@app.command("pay")
def pay_cmd(
    ctx: typer.Context,
    transaction_id: Annotated[str, typer.Argument(help="Transaction id.")],
    amount: Annotated[str, typer.Option(help="Amount to settle now (0 edits details only).")] = "0",
    on: Annotated[
        str | None, typer.Option("--date", help="Payment date, YYYY-MM-DD (default today).")
    ] = None,
    payment_type: Annotated[
        str | None, typer.Option("--payment-type", help="Cash, UPI, Bank Transfer, ...")
    ] = None,
    status: Annotated[
        str | None, typer.Option(help="Pending, Completed or Cancelled (default: unchanged).")
    ] = None,
) -> None:
    """Settle part of a purchase and/or update its date, payment type and status."""

    state: _CliState = ctx.obj
    with _reporting_errors(state):
        ledger = state.ledger()
        tx = ledger.get(transaction_id)
        if payment_type is None:
            if _interactive():
                payment_type = select_option(
                    PAYMENT_TYPES,
                    default=tx.payment_type or PAYMENT_TYPES[0],
                    message="Payment type: ",
                )
            else:
                payment_type = tx.payment_type
        if status is None:
            if _interactive():
                status = select_option(
                    [s.value for s in TransactionStatus],
                    default=tx.status.value,
                    message="Status: ",
                )
            else:
                status = tx.status.value
        result = ledger.record_payment(
            transaction_id,
            date=on or date.today().isoformat(),
            payment_type=payment_type,
            status=status,
            amount_to_add=amount,
        )

    if result.clamp is not None:
        state.fail(
            "Amount cannot exceed balance",
            f"Requested {format_currency(result.clamp.requested)}; "
            f"applied {format_currency(result.clamp.applied)}",
        )
    state.info("Updated", "Transaction updated successfully")
    state.console.print(
        f"Settlement: {format_currency(result.new_total)}  "
        f"Balance: {format_currency(result.new_balance)}"
    )


@app.command("history")
def history_cmd(
    ctx: typer.Context,
    transaction_id: Annotated[str, typer.Argument(help="Transaction id.")],
) -> None:
    """Show the payment history of a purchase (index is what delete-payment takes)."""

    state: _CliState = ctx.obj
    with _reporting_errors(state):
        entries = state.ledger().history(transaction_id)
    if not entries:
        state.console.print("No payments recorded.")
        return
    table = Table(title=f"Payment History {transaction_id}")
    table.add_column("Index", justify="right")
    table.add_column("Date")
    table.add_column("Amount", justify="right")
    table.add_column("Payment Type")
    for idx, entry in enumerate(entries):
        table.add_row(
            str(idx), entry.date.isoformat(), format_currency(entry.amount), entry.payment_type
        )
    state.console.print(table)


@app.command("delete-payment")
def delete_payment_cmd(
    ctx: typer.Context,
    transaction_id: Annotated[str, typer.Argument(help="Transaction id.")],
    index: Annotated[int, typer.Argument(help="History index as shown by `history`.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip the confirmation.")] = False,
) -> None:
    """Delete one payment record and recompute the settled amount."""

    state: _CliState = ctx.obj
    if not yes:
        typer.confirm("Delete this payment record?", abort=True)
    with _reporting_errors(state):
        ledger = state.ledger()
        ledger.delete_settlement_record(transaction_id, index)
        total = ledger.settlement_total(transaction_id)
        balance = ledger.balance(transaction_id)
    state.info("Deleted", "Payment record deleted")
    state.console.print(
        f"Settlement: {format_currency(total)}  Balance: {format_currency(balance)}"
    )


@app.command("summary")
def summary_cmd(ctx: typer.Context) -> None:
    """Total purchase, settlement and balance over all purchases."""

    state: _CliState = ctx.obj
    with _reporting_errors(state):
        s = state.ledger().compute_summary()
    state.console.print(f"Total Purchase: {format_currency(s.total_purchase)}")
    state.console.print(f"Settlement Amount: {format_currency(s.total_settlement)}")
    state.console.print(f"Balance Amount: {format_currency(s.total_balance)}")


@app.command("export")
def export_cmd(
    ctx: typer.Context,
    out_path: Annotated[Path, typer.Argument(help="CSV file to write.", dir_okay=False)],
) -> None:
    """Export every purchase with settlement and balance columns to CSV."""

    state: _CliState = ctx.obj
    with _reporting_errors(state):
        ledger = state.ledger()
        try:
            with open(out_path, "w", encoding="utf-8", newline="") as f:
                n = export_csv(ledger, f)
        except OSError as e:
            state.fail("Error", f"Failed to write {out_path}: {e}")
            raise typer.Exit(1) from e
    state.info("Exported", f"{n} transaction(s) written to {out_path}")


# ---- Catalog sub-commands ------------------------------------------------------


def _catalog_app(kind: CatalogKind, label: str) -> typer.Typer:
    sub = typer.Typer(no_args_is_help=True, help=f"Manage medicine {kind}.")

    @sub.command("add")
    def _add(
        ctx: typer.Context,
        name: Annotated[str, typer.Argument(help=f"{label} name.")],
    ) -> None:
        state: _CliState = ctx.obj
        with _reporting_errors(state):
            stored, created = state.catalog().add(kind, name)
        if created:
            state.info("Added", f"{label} {stored} added successfully")
        else:
            state.info("Exists", f"{label} {stored} already exists")

    @sub.command("list")
    def _list(ctx: typer.Context) -> None:
        state: _CliState = ctx.obj
        with _reporting_errors(state):
            names = state.catalog().names(kind)
        if not names:
            state.console.print(f"No {kind} defined.")
            return
        for n in names:
            state.console.print(n)

    @sub.command("remove")
    def _remove(
        ctx: typer.Context,
        name: Annotated[str, typer.Argument(help=f"{label} name.")],
    ) -> None:
        state: _CliState = ctx.obj
        with _reporting_errors(state):
            removed = state.catalog().remove(kind, name)
        if not removed:
            state.fail("Error", f"{label} {name} not found")
            raise typer.Exit(1)
        state.info("Deleted", f"{label} {name} deleted successfully")

    return sub


app.add_typer(_catalog_app(CATEGORIES, "Category"), name="category")
app.add_typer(_catalog_app(SUPPLIERS, "Supplier"), name="supplier")


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m medicine_ledger.cli`
    app()
