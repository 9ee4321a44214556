from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from shaft.database import SqliteDatabase


@pytest.fixture()
def database(tmp_path: Path) -> SqliteDatabase:
    db = SqliteDatabase(tmp_path / "shaft.sqlite3")
    db.initialize()
    yield db
    db.close()
