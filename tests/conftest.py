"""Pytest configuration for test isolation.

The CLI resolves its JSON store from ``MEDICINE_LEDGER_DATA_DIR`` (default
``./.ledger``) and the SQL store binds a process-wide engine. Both would leak
state between tests that share a working tree, so every test gets its own data
directory, a fresh engine slot and unconfigured package logging.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path

import pytest
from db.client import reset_engine
from medicine_ledger import logging_setup
from medicine_ledger.ledger import SettlementLedger
from medicine_ledger.store import InMemoryStore

FIXED_NOW = datetime(2025, 1, 15, 10, 0, 0)


@pytest.fixture(autouse=True)
def _isolate_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the JSON store at the test's own temporary directory."""

    data_dir = tmp_path / "ledger-data"
    monkeypatch.setenv("MEDICINE_LEDGER_DATA_DIR", os.fspath(data_dir))
    for var in ("MEDICINE_LEDGER_STORE", "DATABASE_URL", "MEDICINE_LEDGER_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    return data_dir


@pytest.fixture(autouse=True)
def _reset_engine():
    yield
    reset_engine()


@pytest.fixture(autouse=True)
def _reset_logging():
    # CLI runs configure logging against a capture stream that is closed
    # once the invocation returns.
    yield
    pkg_logger = logging.getLogger("medicine_ledger")
    for h in list(pkg_logger.handlers):
        pkg_logger.removeHandler(h)
    pkg_logger.propagate = True
    logging_setup._CONFIGURED = False


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def ledger(store: InMemoryStore, clock) -> SettlementLedger:
    return SettlementLedger(store, clock=clock)
