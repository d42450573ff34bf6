"""Public interface for the ``medicine_ledger`` package.

This module exposes the ledger, its stores and the public models/types as the
stable import surface. There is no runtime logic here, only symbol
re-exports. The SQLAlchemy store is imported from
``medicine_ledger.persistence`` directly so the database stack stays optional
at import time.
"""

from .catalog import Catalog, validate_name
from .errors import (
    LedgerError,
    OutOfRangeError,
    StoreUnavailableError,
    TransactionNotFoundError,
    ValidationError,
)
from .ledger import SettlementLedger, compute_summary
from .models import (
    PAYMENT_TYPES,
    ClampWarning,
    LedgerSummary,
    PaymentResult,
    SettlementRecord,
    Transaction,
    TransactionStatus,
)
from .notify import ConsoleNotifier, Notification, Notifier, RecordingNotifier
from .reporting import export_csv, format_currency
from .store import InMemoryStore, JsonFileStore, LedgerStore

__all__ = [
    # Ledger
    "SettlementLedger",
    "compute_summary",
    # Models / types
    "Transaction",
    "TransactionStatus",
    "SettlementRecord",
    "PaymentResult",
    "ClampWarning",
    "LedgerSummary",
    "PAYMENT_TYPES",
    # Errors
    "LedgerError",
    "ValidationError",
    "TransactionNotFoundError",
    "OutOfRangeError",
    "StoreUnavailableError",
    # Stores
    "LedgerStore",
    "InMemoryStore",
    "JsonFileStore",
    # Catalog / reporting / notifications
    "Catalog",
    "validate_name",
    "format_currency",
    "export_csv",
    "Notification",
    "Notifier",
    "ConsoleNotifier",
    "RecordingNotifier",
]
