"""Configuration loading for the shaft service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .database import DEFAULT_POOL_SIZE, DEFAULT_POOL_TIMEOUT


@dataclass(frozen=True)
class GithubSettings:
    """Credentials for the GitHub OAuth app used for login."""

    client_id: str
    client_secret: str
    state: str
    required_org: str

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "GithubSettings":
        required_fields = {"client_id", "client_secret", "state", "required_org"}
        missing = required_fields - data.keys()
        if missing:
            raise ValueError(f"Missing required github configuration fields: {', '.join(sorted(missing))}")
        return GithubSettings(
            client_id=str(data["client_id"]),
            client_secret=str(data["client_secret"]),
            state=str(data["state"]),
            required_org=str(data["required_org"]),
        )


@dataclass(frozen=True)
class Settings:
    github: GithubSettings
    database: Optional[str] = None
    pool_size: int = DEFAULT_POOL_SIZE
    pool_timeout: float = DEFAULT_POOL_TIMEOUT
    web_root: str = ""
    host: str = "127.0.0.1"
    port: int = 8975
    log_level: str = "INFO"
    secure_cookies: bool = True

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        github_raw = data.get("github")
        if not isinstance(github_raw, Mapping):
            raise ValueError("Configuration must define a 'github' section")

        database = data.get("database")
        if database is not None:
            database = _resolve_database_target(str(database), base_path)

        return Settings(
            github=GithubSettings.from_dict(github_raw),
            database=database,
            pool_size=int(data.get("pool_size", DEFAULT_POOL_SIZE)),
            pool_timeout=float(data.get("pool_timeout", DEFAULT_POOL_TIMEOUT)),
            web_root=str(data.get("web_root", "")).rstrip("/"),
            host=str(data.get("host", "127.0.0.1")),
            port=int(data.get("port", 8975)),
            log_level=str(data.get("log_level", "INFO")).upper(),
            secure_cookies=bool(data.get("secure_cookies", True)),
        )


def _resolve_database_target(value: str, base_path: Path | None) -> str:
    if value == ":memory:" or value.startswith(("postgres://", "postgresql://")):
        return value
    raw_path = Path(value).expanduser()
    if not raw_path.is_absolute() and base_path is not None:
        raw_path = base_path / raw_path
    return str(raw_path.resolve(strict=False))


def apply_env_overrides(settings: Settings, environ: Mapping[str, str]) -> Settings:
    """Return ``settings`` with any ``SHAFT_*`` environment overrides applied."""

    overrides: Dict[str, object] = {}
    if environ.get("SHAFT_DATABASE"):
        overrides["database"] = environ["SHAFT_DATABASE"]
    if "SHAFT_WEB_ROOT" in environ:
        overrides["web_root"] = environ["SHAFT_WEB_ROOT"].rstrip("/")
    if environ.get("SHAFT_LOG_LEVEL"):
        overrides["log_level"] = environ["SHAFT_LOG_LEVEL"].upper()
    if not overrides:
        return settings
    return replace(settings, **overrides)


def load_settings(config_path: Path, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from a YAML file, then apply environment overrides."""
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, Mapping):
        raise ValueError("Configuration file must contain a mapping at the top level")

    settings = Settings.from_dict(raw, base_path=config_path.parent)
    return apply_env_overrides(settings, os.environ if environ is None else environ)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "shaft.yaml").resolve(strict=False)
    return candidate


__all__ = [
    "GithubSettings",
    "Settings",
    "apply_env_overrides",
    "load_settings",
    "resolve_config_path",
]
