"""db: shared database library (SQLAlchemy/Alembic).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models in ``db.models.pharmacy`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
"""

from __future__ import annotations

from .models.pharmacy import (
    Base,
    MlCatalogEntry,
    MlSettlementEntry,
    MlSettlementTotal,
    MlTransaction,
)

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "MlCatalogEntry",
    "MlSettlementEntry",
    "MlSettlementTotal",
    "MlTransaction",
]
