"""
Pytest fixtures for Agenda Intel.

Tests mirror src/agenda_intel structure. Every test gets its own SQLite file.
"""

from datetime import datetime
from typing import Any, Callable

import pytest

from agenda_intel.config import reset_settings
from agenda_intel.db.tasks_repo import reset_engine
from agenda_intel.models import Task

# Tuesday, mid-morning
FIXED_NOW = datetime(2026, 3, 10, 9, 30)


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SQLITE_DB_PATH", str(tmp_path / "agenda_test.db"))
    monkeypatch.delenv("PREDICTIONS_URL", raising=False)
    reset_settings()
    reset_engine()
    yield
    reset_engine()
    reset_settings()


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def make_task() -> Callable[..., Task]:
    counter = {"n": 0}

    def _make(**fields: Any) -> Task:
        counter["n"] += 1
        fields.setdefault("id", f"t{counter['n']}")
        fields.setdefault("title", f"Task {fields['id']}")
        return Task(**fields)

    return _make
