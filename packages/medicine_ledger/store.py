"""Collection stores consumed by the settlement ledger.

A store holds named, ordered collections of JSON-friendly records and offers
three operations:

- ``load(collection)`` returns the records (an empty list when absent);
- ``save(collection, records)`` overwrites the whole collection;
- ``save_many(batch)`` overwrites several collections as one write: either
  every collection in the batch changes or none does.

There is no incremental write: the ledger re-serializes a full collection after
every mutation. Implementations here:

- :class:`InMemoryStore` for tests and scripting;
- :class:`JsonFileStore`, one ``<collection>.json`` per collection on disk.

The SQLAlchemy-backed store lives in :mod:`medicine_ledger.persistence` so the
database stack is only imported when it is used.
"""

from __future__ import annotations

import contextlib
import copy
import json
import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol

from .errors import StoreUnavailableError
from .logging_setup import get_logger

TRANSACTIONS = "transactions"
SETTLEMENT_TOTALS = "settlement_totals"
SETTLEMENT_HISTORY = "settlement_history"
CATEGORIES = "categories"
SUPPLIERS = "suppliers"

COLLECTIONS: tuple[str, ...] = (
    TRANSACTIONS,
    SETTLEMENT_TOTALS,
    SETTLEMENT_HISTORY,
    CATEGORIES,
    SUPPLIERS,
)

_logger = get_logger("medicine_ledger.store")


class LedgerStore(Protocol):
    def load(self, collection: str) -> list[dict[str, Any]]: ...

    def save(self, collection: str, records: Sequence[Mapping[str, Any]]) -> None: ...

    def save_many(self, batch: Mapping[str, Sequence[Mapping[str, Any]]]) -> None: ...


def check_collection(collection: str) -> str:
    """Reject unknown collection names (a programming error, not a store failure)."""

    if collection not in COLLECTIONS:
        raise ValueError(
            f"unknown collection {collection!r}; expected one of {', '.join(COLLECTIONS)}"
        )
    return collection


class InMemoryStore:
    """Dict-backed store. Records are deep-copied on the way in and out.

    Two hooks let tests exercise the ledger's failure path; each fires once and
    makes the write raise :class:`StoreUnavailableError` before anything is
    stored:

    - ``fail_next_save``: the next write of any collection;
    - ``fail_collection``: the next write that includes that collection.
    """

    def __init__(self, initial: Mapping[str, Sequence[Mapping[str, Any]]] | None = None) -> None:
        self._data: dict[str, list[dict[str, Any]]] = {}
        self.fail_next_save = False
        self.fail_collection: str | None = None
        self.save_count = 0
        for name, records in (initial or {}).items():
            self._data[check_collection(name)] = [dict(r) for r in copy.deepcopy(list(records))]

    def load(self, collection: str) -> list[dict[str, Any]]:
        return copy.deepcopy(self._data.get(check_collection(collection), []))

    def save(self, collection: str, records: Sequence[Mapping[str, Any]]) -> None:
        self.save_many({collection: records})

    def save_many(self, batch: Mapping[str, Sequence[Mapping[str, Any]]]) -> None:
        for name in batch:
            check_collection(name)
            if self.fail_next_save or name == self.fail_collection:
                self.fail_next_save = False
                self.fail_collection = None
                raise StoreUnavailableError(name, "simulated outage")
        staged = {
            name: [dict(r) for r in copy.deepcopy(list(records))]
            for name, records in batch.items()
        }
        self._data.update(staged)
        self.save_count += 1


class JsonFileStore:
    """One JSON array file per collection under ``root``.

    Writes go to ``<name>.json.tmp`` first and are then moved into place with
    ``os.replace`` so a crash never leaves a half-written collection. A batch
    stages every temp file before the first replace; if staging fails, the
    temp files are removed and no collection changes.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser()

    def path_for(self, collection: str) -> Path:
        return self.root / f"{check_collection(collection)}.json"

    def load(self, collection: str) -> list[dict[str, Any]]:
        path = self.path_for(collection)
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            _logger.error("failed to read %s: %s", path, e)
            raise StoreUnavailableError(collection, f"cannot read {path}: {e}") from e
        if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
            raise StoreUnavailableError(collection, f"{path} does not hold a list of records")
        return data

    def save(self, collection: str, records: Sequence[Mapping[str, Any]]) -> None:
        self.save_many({collection: records})

    def save_many(self, batch: Mapping[str, Sequence[Mapping[str, Any]]]) -> None:
        payloads = {
            self.path_for(name): (
                name,
                json.dumps([dict(r) for r in records], ensure_ascii=False, indent=2),
            )
            for name, records in batch.items()
        }
        staged: list[tuple[Path, Path]] = []
        current = next(iter(batch), "")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            for path, (name, payload) in payloads.items():
                current = name
                tmp = path.with_name(path.name + ".tmp")
                staged.append((tmp, path))
                tmp.write_text(payload, encoding="utf-8")
        except OSError as e:
            for tmp, _ in staged:
                with contextlib.suppress(OSError):
                    tmp.unlink()
            _logger.error("failed to stage %s under %s: %s", current, self.root, e)
            raise StoreUnavailableError(current, f"cannot write under {self.root}: {e}") from e

        for i, (tmp, path) in enumerate(staged):
            try:
                os.replace(tmp, path)
            except OSError as e:
                for left, _ in staged[i:]:
                    with contextlib.suppress(OSError):
                        left.unlink()
                _logger.error("failed to replace %s: %s", path, e)
                raise StoreUnavailableError(path.stem, f"cannot write {path}: {e}") from e


__all__ = [
    "TRANSACTIONS",
    "SETTLEMENT_TOTALS",
    "SETTLEMENT_HISTORY",
    "CATEGORIES",
    "SUPPLIERS",
    "COLLECTIONS",
    "LedgerStore",
    "check_collection",
    "InMemoryStore",
    "JsonFileStore",
]
