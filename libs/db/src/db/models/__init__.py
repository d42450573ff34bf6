"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the pharmacy ledger models used by ``medicine_ledger``.
"""

from .pharmacy import (
    Base,
    MlCatalogEntry,
    MlSettlementEntry,
    MlSettlementTotal,
    MlTransaction,
)

__all__ = [
    "Base",
    "MlCatalogEntry",
    "MlSettlementEntry",
    "MlSettlementTotal",
    "MlTransaction",
]
