"""Medicine category and supplier master lists.

These are the option lists behind the purchase form's category and supplier
dropdowns. Each list is a store collection of ``{"name": ...}`` records kept
in insertion order. Names are compared case-insensitively, so adding an
existing name is a no-op that returns the stored spelling.

Exports
-------
- ``normalize_name(...)`` and ``validate_name(...)``: shared by the CLI for
  early feedback and enforced authoritatively by :class:`Catalog`.
- ``Catalog``: ``add``/``remove``/``names`` per kind, and ``resolve`` which
  the CLI uses to hold purchases to the lists once they are populated.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from .errors import ValidationError
from .logging_setup import get_logger
from .models import StoredCatalogEntry
from .store import CATEGORIES, SUPPLIERS, LedgerStore

type CatalogKind = Literal["categories", "suppliers"]

KINDS: tuple[str, ...] = (CATEGORIES, SUPPLIERS)
_FIELD_FOR_KIND = {CATEGORIES: "category", SUPPLIERS: "supplier"}

_ALLOWED_RE = re.compile(r"^[A-Za-z0-9 &\-/.,]+$")

_logger = get_logger("medicine_ledger.catalog")


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name``. Case is kept."""

    return " ".join(name.strip().split())


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, min_len: int = 1, max_len: int = 64) -> NameValidation:
    """Validate a category or supplier name.

    Rules
    -----
    - Trim whitespace; enforce length bounds 1..64.
    - Allowed characters: letters, numbers, spaces, and ``& - / . ,``.
    """

    n = normalize_name(name)
    if len(n) < min_len:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if not _ALLOWED_RE.match(n):
        return NameValidation(False, "Only letters, numbers, spaces, and & - / . , are allowed")
    return NameValidation(True, None)


def _check_kind(kind: str) -> str:
    if kind not in KINDS:
        raise ValueError(f"unknown catalog kind {kind!r}; expected one of {', '.join(KINDS)}")
    return kind


class Catalog:
    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    def names(self, kind: CatalogKind) -> list[str]:
        return [
            StoredCatalogEntry.model_validate(r).name
            for r in self._store.load(_check_kind(kind))
        ]

    def add(self, kind: CatalogKind, name: str) -> tuple[str, bool]:
        """Add ``name`` to the list; returns ``(stored_name, created)``."""

        v = validate_name(name)
        if not v.ok:
            raise ValidationError("name", name, v.reason or "invalid name")
        clean = normalize_name(name)
        existing = self.names(kind)
        for n in existing:
            if n.lower() == clean.lower():
                return n, False
        self._store.save(kind, [{"name": n} for n in [*existing, clean]])
        _logger.info("added %s to %s", clean, kind)
        return clean, True

    def resolve(self, kind: CatalogKind, name: str) -> str:
        """Match ``name`` against the ``kind`` list and return the stored spelling.

        An empty list accepts any name as given, so purchases can be recorded
        before the lists are set up. Otherwise an unknown name raises
        :class:`ValidationError` on ``category`` or ``supplier``.
        """

        known = self.names(kind)
        if not known:
            return name
        target = normalize_name(name).lower()
        for n in known:
            if n.lower() == target:
                return n
        raise ValidationError(
            _FIELD_FOR_KIND[kind], name, f"not in the {kind} list ({', '.join(known)})"
        )

    def remove(self, kind: CatalogKind, name: str) -> bool:
        """Drop ``name`` (case-insensitive); returns whether anything was removed."""

        target = normalize_name(name).lower()
        existing = self.names(kind)
        kept = [n for n in existing if n.lower() != target]
        if len(kept) == len(existing):
            return False
        self._store.save(kind, [{"name": n} for n in kept])
        _logger.info("removed %s from %s", name, kind)
        return True


__all__ = [
    "KINDS",
    "CatalogKind",
    "normalize_name",
    "validate_name",
    "NameValidation",
    "Catalog",
]
