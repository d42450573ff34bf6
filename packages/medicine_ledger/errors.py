"""Error taxonomy for ``medicine_ledger``.

Every failure the ledger reports derives from :class:`LedgerError` and carries
enough structure (kind plus offending field/value) for a caller to render a
message. A clamped payment is not an error; see
:class:`medicine_ledger.models.ClampWarning`.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for all errors raised by the ledger and its stores."""


class ValidationError(LedgerError):
    """A required field is missing or malformed; nothing was written."""

    def __init__(self, field: str, value: Any, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.value = value
        self.message = message


class TransactionNotFoundError(ValidationError):
    def __init__(self, transaction_id: Any) -> None:
        super().__init__(
            "transaction_id", transaction_id, f"unknown transaction {transaction_id!r}"
        )
        self.transaction_id = transaction_id


class OutOfRangeError(LedgerError):
    """A settlement history index does not address an existing entry."""

    def __init__(self, transaction_id: str, index: Any, size: int) -> None:
        super().__init__(
            f"history index {index!r} is out of range for transaction "
            f"{transaction_id!r} ({size} entries)"
        )
        self.transaction_id = transaction_id
        self.index = index
        self.size = size


class StoreUnavailableError(LedgerError):
    """A persistence round trip failed; the mutation was not applied.

    Callers should reload the ledger from the store before retrying.
    """

    def __init__(self, collection: str, message: str) -> None:
        super().__init__(f"store unavailable ({collection}): {message}")
        self.collection = collection
        self.message = message


__all__ = [
    "LedgerError",
    "ValidationError",
    "TransactionNotFoundError",
    "OutOfRangeError",
    "StoreUnavailableError",
]
