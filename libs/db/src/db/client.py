"""Engine and session for the ledger's SQL store.

``SqlAlchemyStore`` opens one ``session_scope()`` per load or save batch, so a
batch commits or rolls back as a unit. The engine binds lazily to
``DATABASE_URL``; tests call ``reset_engine()`` after pointing that variable at
a fresh SQLite file.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

_ENGINE: Engine | None = None
_SESSION_MAKER: sessionmaker[Session] | None = None
_DB_URL: str | None = None


def resolve_database_url(override: str | None = None) -> str:
    """Pick the ledger database: ``override`` wins over ``DATABASE_URL``."""

    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; the SQL ledger store has nowhere to connect")
    return url


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return the ledger engine, creating it on first use."""

    global _ENGINE, _SESSION_MAKER, _DB_URL
    url = resolve_database_url(database_url)
    if _ENGINE is None:
        _ENGINE = create_engine(url, pool_pre_ping=True)
        _SESSION_MAKER = sessionmaker(bind=_ENGINE, expire_on_commit=False, class_=Session)
        _DB_URL = url
        return _ENGINE
    # One ledger database per process until reset_engine().
    if _DB_URL is not None and url != _DB_URL:
        raise RuntimeError(
            f"ledger engine is bound to {_DB_URL!r}; call reset_engine() before switching to {url!r}"
        )
    return _ENGINE


def reset_engine() -> None:
    """Dispose the ledger engine so the next call binds to the current URL."""

    global _ENGINE, _SESSION_MAKER, _DB_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _SESSION_MAKER = None
    _DB_URL = None


def get_session(*, database_url: str | None = None) -> Session:
    get_engine(database_url=database_url)
    assert _SESSION_MAKER is not None  # bound by get_engine
    return _SESSION_MAKER()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Commit on clean exit, roll back and re-raise otherwise."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "resolve_database_url",
    "get_engine",
    "get_session",
    "reset_engine",
    "session_scope",
]
