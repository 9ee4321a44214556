"""Minimal GitHub API client for the OAuth login flow."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger("shaft.github")

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_ACCESS_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_API_URL = "https://api.github.com"
USER_AGENT = "shaft"


class GithubError(Exception):
    """Talking to GitHub failed or returned something unexpected."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class GithubUser:
    login: str
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.login


@dataclass(frozen=True)
class OrganizationMembership:
    state: str
    role: str


class GithubApi:
    """Wraps the three GitHub calls needed to log a user in."""

    def __init__(self, client: Optional[httpx.Client] = None, *, timeout: float = 10.0) -> None:
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def authorize_url(client_id: str, state: str) -> str:
        url = httpx.URL(
            GITHUB_AUTHORIZE_URL,
            params={"client_id": client_id, "state": state, "scope": "read:org"},
        )
        return str(url)

    def exchange_oauth_code(self, client_id: str, client_secret: str, code: str) -> str:
        """Exchange the callback ``code`` for a user access token."""

        response = self._request(
            "POST",
            GITHUB_ACCESS_TOKEN_URL,
            params={"client_id": client_id, "client_secret": client_secret, "code": code},
            headers={"Accept": "application/json"},
        )
        payload = self._json(response)
        token = payload.get("access_token")
        if not isinstance(token, str) or not token:
            error = payload.get("error", "missing access_token")
            raise GithubError(f"GitHub rejected the OAuth code: {error}")
        return token

    def get_authenticated_user(self, token: str) -> GithubUser:
        response = self._request("GET", f"{GITHUB_API_URL}/user", headers=self._auth_headers(token))
        payload = self._json(response)
        login = payload.get("login")
        if not isinstance(login, str) or not login:
            raise GithubError("GitHub user response did not include a login")
        name = payload.get("name")
        return GithubUser(login=login, name=name if isinstance(name, str) and name else None)

    def get_if_member_of_org(self, token: str, org: str) -> Optional[OrganizationMembership]:
        """Return the caller's membership in ``org``, or ``None`` if not a member."""

        response = self._request(
            "GET",
            f"{GITHUB_API_URL}/user/memberships/orgs/{org}",
            headers=self._auth_headers(token),
        )
        if response.status_code in (httpx.codes.FORBIDDEN, httpx.codes.NOT_FOUND):
            return None
        payload = self._json(response)
        return OrganizationMembership(
            state=str(payload.get("state", "")),
            role=str(payload.get("role", "")),
        )

    def _auth_headers(self, token: str) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
            "Authorization": f"token {token}",
        }

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Request to GitHub failed: %s", exc)
            raise GithubError(f"Failed to send request to GitHub: {exc}") from exc

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        if not response.is_success:
            raise GithubError(
                f"Got non-200 response from GitHub: {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise GithubError("Failed to parse JSON response from GitHub") from exc
        if not isinstance(payload, dict):
            raise GithubError("Unexpected JSON response from GitHub")
        return payload


__all__ = ["GithubApi", "GithubError", "GithubUser", "OrganizationMembership"]
