from __future__ import annotations

import httpx
from fastapi.testclient import TestClient

from shaft.application import create_application
from shaft.config import GithubSettings, Settings
from shaft.github import GithubApi

SETTINGS = Settings(
    github=GithubSettings(client_id="cid", client_secret="secret", state="state", required_org="crew"),
    secure_cookies=False,
)


def test_shutdown_closes_github_client_and_database(database, monkeypatch) -> None:
    http_client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    closed = []
    monkeypatch.setattr(database, "close", lambda: closed.append("database"))

    app = create_application(SETTINGS, database=database, github=GithubApi(http_client))
    with TestClient(app) as client:
        assert client.get("/health").text == "OK"
        assert not http_client.is_closed
        assert closed == []

    assert http_client.is_closed
    assert closed == ["database"]


def test_builds_database_from_settings(tmp_path) -> None:
    settings = Settings(github=SETTINGS.github, database=str(tmp_path / "app.sqlite3"))
    github = GithubApi(httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500))))
    app = create_application(settings, github=github)

    with TestClient(app) as client:
        assert client.get("/api/balances").status_code == 401

    assert (tmp_path / "app.sqlite3").exists()
