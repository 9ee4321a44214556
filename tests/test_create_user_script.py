from __future__ import annotations

import importlib.util
import sys
from pathlib import Path

import pytest

from shaft.database import SqliteDatabase
from shaft.identity import IdentityStore
from shaft.sessions import SessionStore

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "create_user.py"


def _load_script():
    spec = importlib.util.spec_from_file_location("create_user_script", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    assert spec.loader is not None
    spec.loader.exec_module(module)
    return module


def test_creates_user_and_issues_token(tmp_path: Path, monkeypatch, capsys) -> None:
    db_path = tmp_path / "users.sqlite3"
    monkeypatch.setattr(sys, "argv", ["create_user.py", "carol", " Carol ", "--db", str(db_path), "--issue-token"])

    assert _load_script().main() == 0

    out = capsys.readouterr().out.splitlines()
    assert out[0] == "Created user carol: Carol"
    token = out[1].split(": ", 1)[1]

    database = SqliteDatabase(db_path)
    try:
        assert IdentityStore(database).find_user_by_external_id("carol") == "carol"
        user = SessionStore(database).resolve_token(token)
        assert user is not None and user.display_name == "Carol"
    finally:
        database.close()


def test_duplicate_external_id_fails(tmp_path: Path, monkeypatch, capsys) -> None:
    db_path = tmp_path / "users.sqlite3"
    monkeypatch.setattr(sys, "argv", ["create_user.py", "dave", "Dave", "--db", str(db_path)])
    script = _load_script()

    assert script.main() == 0
    assert script.main() == 1
    assert "already linked" in capsys.readouterr().err


@pytest.mark.parametrize("display_name", ["", "   "])
def test_blank_display_name_fails(tmp_path: Path, monkeypatch, capsys, display_name: str) -> None:
    monkeypatch.setattr(
        sys, "argv", ["create_user.py", "erin", display_name, "--db", str(tmp_path / "users.sqlite3")]
    )

    assert _load_script().main() == 1
    assert "Error" in capsys.readouterr().err
