"""Request authentication for the shaft API."""
from __future__ import annotations

from typing import Optional

import anyio
from fastapi import HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .models import User
from .sessions import SessionStore

TOKEN_COOKIE = "token"


class SessionAuth:
    """Resolve the caller's session token to a :class:`User`.

    The token is read from an ``Authorization: Bearer`` header, falling back to
    the ``token`` cookie set by the login flow.
    """

    def __init__(self, sessions: SessionStore) -> None:
        self._sessions = sessions
        self._bearer = HTTPBearer(auto_error=False)

    async def extract_token(self, request: Request) -> Optional[str]:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is not None and credentials.scheme.lower() == "bearer":
            token = credentials.credentials.strip()
            if token:
                return token
        cookie = request.cookies.get(TOKEN_COOKIE, "").strip()
        return cookie or None

    async def __call__(self, request: Request) -> User:
        token = await self.extract_token(request)
        if token is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing session token")

        user = await anyio.to_thread.run_sync(self._sessions.resolve_token, token)
        if user is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session token")
        return user


__all__ = ["SessionAuth", "TOKEN_COOKIE"]
