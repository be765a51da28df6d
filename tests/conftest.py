"""Pytest configuration for test isolation.

The engine reads ``DATABASE_URL`` and ``STATEMENT_IMPORT_*`` from the
environment and from a ``.env`` discovered upwards from the working directory.
Each test runs from its own temporary directory with those variables cleared,
and cached SQLAlchemy engines are disposed afterwards so one test's SQLite
file never leaks into the next.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from ledger_db.client import dispose_engines

from statement_import.store import SqlLedgerStore
from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in list(os.environ):
        if key == "DATABASE_URL" or key.startswith("STATEMENT_IMPORT_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    dispose_engines()


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "ledger.sqlite3")


@pytest.fixture
def store(db_url: str) -> SqlLedgerStore:
    return SqlLedgerStore(database_url=db_url)
