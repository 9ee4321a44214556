from __future__ import annotations

from pathlib import Path

import pytest

from shaft.config import GithubSettings, Settings, apply_env_overrides, load_settings, resolve_config_path

GITHUB = {
    "client_id": "id",
    "client_secret": "secret",
    "state": "state",
    "required_org": "org",
}


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_load_settings_from_yaml(tmp_path: Path) -> None:
    config = _write(
        tmp_path / "shaft.yaml",
        """
github:
  client_id: id
  client_secret: secret
  state: state
  required_org: org
database: data/ledger.sqlite3
pool_size: 3
web_root: /shaft/
port: 9000
log_level: debug
secure_cookies: false
""",
    )

    settings = load_settings(config, environ={})

    assert settings.github == GithubSettings(**GITHUB)
    assert settings.database == str((tmp_path / "data" / "ledger.sqlite3").resolve())
    assert settings.pool_size == 3
    assert settings.web_root == "/shaft"
    assert settings.port == 9000
    assert settings.host == "127.0.0.1"
    assert settings.log_level == "DEBUG"
    assert settings.secure_cookies is False


def test_postgres_url_is_kept_verbatim() -> None:
    settings = Settings.from_dict({"github": GITHUB, "database": "postgresql://u@db/shaft"}, base_path=Path("/srv"))
    assert settings.database == "postgresql://u@db/shaft"


def test_missing_github_fields_are_reported() -> None:
    with pytest.raises(ValueError, match="client_secret, required_org"):
        GithubSettings.from_dict({"client_id": "id", "state": "state"})


def test_missing_github_section() -> None:
    with pytest.raises(ValueError):
        Settings.from_dict({"database": ":memory:"})


def test_environment_overrides() -> None:
    settings = Settings.from_dict({"github": GITHUB})

    overridden = apply_env_overrides(
        settings,
        {"SHAFT_DATABASE": ":memory:", "SHAFT_WEB_ROOT": "/ledger/", "SHAFT_LOG_LEVEL": "warning"},
    )

    assert overridden.database == ":memory:"
    assert overridden.web_root == "/ledger"
    assert overridden.log_level == "WARNING"
    assert apply_env_overrides(settings, {}) is settings


def test_resolve_config_path(tmp_path: Path) -> None:
    assert resolve_config_path(str(tmp_path / "custom.yaml")) == (tmp_path / "custom.yaml").resolve()
    assert resolve_config_path(None).name == "shaft.yaml"
