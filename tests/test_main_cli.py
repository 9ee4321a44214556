from __future__ import annotations

from pathlib import Path

import pytest

import main as cli
from shaft.database import SqliteDatabase
from shaft.identity import IdentityStore
from shaft.ledger import Ledger
from shaft.models import Transaction


@pytest.fixture(autouse=True)
def _no_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SHAFT_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("SHAFT_DATABASE", raising=False)


def _seed(path: Path) -> None:
    database = SqliteDatabase(path)
    database.initialize()
    identities = IdentityStore(database)
    identities.create_user("alice", "Alice")
    identities.create_user("bob", "Bob")
    Ledger(database).append(Transaction.create("alice", "bob", 1234, "train tickets"))
    database.close()


def test_serve_is_the_default_command() -> None:
    assert cli._parse_args([]).command == "serve"

    args = cli._parse_args(["--config", "shaft.yaml", "--port", "9000"])
    assert args.command == "serve"
    assert args.config == "shaft.yaml"
    assert args.port == 9000


def test_subcommand_after_global_options() -> None:
    args = cli._parse_args(["--database=ledger.sqlite3", "transactions", "--limit", "3"])
    assert args.command == "transactions"
    assert args.database == "ledger.sqlite3"
    assert args.limit == 3


@pytest.mark.parametrize(
    ("amount", "expected"),
    [(0, "£0.00"), (5, "£0.05"), (1234, "£12.34"), (-105, "-£1.05")],
)
def test_format_pence(amount: int, expected: str) -> None:
    assert cli.format_pence(amount) == expected


def test_serve_requires_configuration(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["serve"]) == 2
    assert "configuration file" in capsys.readouterr().err


def test_init_db_creates_schema(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "fresh.sqlite3"

    assert cli.main(["--database", str(path), "init-db"]) == 0

    assert path.exists()
    assert "complete" in capsys.readouterr().out


def test_balances_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "ledger.sqlite3"
    _seed(path)

    assert cli.main(["--database", str(path), "balances"]) == 0

    lines = capsys.readouterr().out.splitlines()
    rows = [line.split() for line in lines[2:]]
    assert [row[0] for row in rows] == ["bob", "alice"]
    assert rows[0][-1] == "-£12.34"
    assert rows[1][-1] == "£12.34"


def test_transactions_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "ledger.sqlite3"
    _seed(path)

    assert cli.main(["--database", str(path), "transactions", "--limit", "5"]) == 0

    out = capsys.readouterr().out
    assert "alice -> bob" in out
    assert "£12.34" in out
    assert "train tickets" in out


def test_empty_database_messages(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = str(tmp_path / "empty.sqlite3")

    assert cli.main(["--database", path, "balances"]) == 0
    assert cli.main(["--database", path, "transactions"]) == 0

    out = capsys.readouterr().out
    assert "No users are currently registered." in out
    assert "No transactions have been recorded." in out
