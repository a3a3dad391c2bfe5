"""Pytest configuration shared by the suite.

Every test gets a clean view of the process-wide state the package keeps:
the shared SQLAlchemy engine in ``db.client`` is disposed after each test, and
``DATABASE_URL``/``LEDGER_IMPORT_*`` variables from the developer's shell or a
local ``.env`` are removed so they cannot leak into assertions.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from db.client import dispose_engine, session_scope
from sqlalchemy.orm import Session

from tests.helpers.db import bootstrap_sqlite_db
from tests.helpers.memory_store import MemoryTransactionStore


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for var in ("DATABASE_URL", "LEDGER_IMPORT_DATE_FORMAT", "LEDGER_IMPORT_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    yield
    dispose_engine()


@pytest.fixture
def memory_store() -> MemoryTransactionStore:
    return MemoryTransactionStore()


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    """URL of a fresh file-backed SQLite DB with schema and reference rows."""

    return bootstrap_sqlite_db(tmp_path / "ledger.db")


@pytest.fixture
def db_session(sqlite_url: str) -> Iterator[Session]:
    with session_scope(database_url=sqlite_url) as session:
        yield session
