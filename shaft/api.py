"""FastAPI application exposing the ledger over JSON plus the GitHub login flow."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import anyio
from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from pydantic import BaseModel, Field, field_validator

from .balances import BalanceEngine
from .config import Settings
from .database import Database
from .errors import Conflict, CorruptData, ResourceUnavailable, UnknownUser
from .github import GithubApi, GithubError
from .identity import IdentityStore
from .ledger import DEFAULT_RECENT_LIMIT, MAX_AMOUNT, MIN_AMOUNT, Ledger
from .models import Transaction, User, to_timestamp
from .security import TOKEN_COOKIE, SessionAuth
from .sessions import SessionStore

logger = logging.getLogger("shaft.api")

COOKIE_MAX_AGE = 60 * 60 * 24 * 14
MAX_RECENT_LIMIT = 100


class UserResponse(BaseModel):
    user_id: str
    display_name: str
    balance: int


class TransactionResponse(BaseModel):
    shafter: str
    shaftee: str
    amount: int
    datetime: int
    reason: str


class ShaftRequest(BaseModel):
    other_user: str = Field(..., min_length=1, max_length=255)
    amount: int = Field(..., strict=True, ge=MIN_AMOUNT, le=MAX_AMOUNT)
    reason: str = Field(..., max_length=1000)

    @field_validator("other_user")
    @classmethod
    def _normalize_other_user(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("other_user must not be empty")
        return stripped


def user_to_response(user: User) -> UserResponse:
    return UserResponse(user_id=user.user_id, display_name=user.display_name, balance=user.balance)


def transaction_to_response(transaction: Transaction) -> TransactionResponse:
    return TransactionResponse(
        shafter=transaction.shafter,
        shaftee=transaction.shaftee,
        amount=transaction.amount,
        datetime=to_timestamp(transaction.occurred_at),
        reason=transaction.reason,
    )


def create_app(
    *,
    database: Database,
    settings: Settings,
    github: Optional[GithubApi] = None,
    lifespan: Optional[Callable[[FastAPI], Any]] = None,
) -> FastAPI:
    """Create the shaft API application around an initialised database."""

    identities = IdentityStore(database)
    sessions = SessionStore(database)
    ledger = Ledger(database)
    balances = BalanceEngine(database)
    auth = SessionAuth(sessions)
    github_api = github or GithubApi()
    home_url = f"{settings.web_root}/"

    app = FastAPI(
        title="Shaft",
        description="Track who owes whom",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.database = database
    app.state.settings = settings
    app.state.github = github_api

    @app.exception_handler(UnknownUser)
    async def _unknown_user(request: Request, exc: UnknownUser) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.exception_handler(Conflict)
    async def _conflict(request: Request, exc: Conflict) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @app.exception_handler(ResourceUnavailable)
    async def _unavailable(request: Request, exc: ResourceUnavailable) -> JSONResponse:
        logger.warning("Storage unavailable while handling %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Storage is temporarily unavailable"},
        )

    @app.exception_handler(CorruptData)
    async def _corrupt(request: Request, exc: CorruptData) -> JSONResponse:
        logger.error("Corrupt data while handling %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Stored data could not be read"},
        )

    async def get_current_user(request: Request) -> User:
        return await auth(request)

    @app.get("/health", response_class=PlainTextResponse)
    async def healthcheck() -> str:
        return "OK"

    @app.get("/api/balances", response_model=Dict[str, UserResponse])
    def get_balances(current_user: User = Depends(get_current_user)) -> Dict[str, UserResponse]:
        return {user_id: user_to_response(user) for user_id, user in balances.all_balances().items()}

    @app.get("/api/transactions", response_model=List[TransactionResponse])
    def get_transactions(
        limit: int = Query(DEFAULT_RECENT_LIMIT, ge=1, le=MAX_RECENT_LIMIT),
        current_user: User = Depends(get_current_user),
    ) -> List[TransactionResponse]:
        return [transaction_to_response(item) for item in ledger.recent(limit)]

    @app.post("/api/shaft")
    def shaft_user(
        payload: ShaftRequest,
        current_user: User = Depends(get_current_user),
    ) -> Dict[str, object]:
        ledger.shaft(current_user.user_id, payload.other_user, payload.amount, payload.reason)
        return {}

    @app.get("/api/me", response_model=UserResponse)
    def read_current_user(current_user: User = Depends(get_current_user)) -> UserResponse:
        return user_to_response(current_user)

    @app.post("/logout")
    async def logout(request: Request) -> RedirectResponse:
        token = await auth.extract_token(request)
        if token is not None:
            await anyio.to_thread.run_sync(sessions.revoke_token, token)
        logger.info("Got logout request")
        response = RedirectResponse(url=home_url, status_code=status.HTTP_303_SEE_OTHER)
        response.delete_cookie(
            TOKEN_COOKIE,
            path="/",
            secure=settings.secure_cookies,
            httponly=True,
            samesite="lax",
        )
        return response

    @app.get("/github/login")
    async def github_login() -> RedirectResponse:
        url = GithubApi.authorize_url(settings.github.client_id, settings.github.state)
        return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)

    @app.get("/github/callback")
    def github_callback(code: str, state: str) -> RedirectResponse:
        if state != settings.github.state:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="State param mismatch")

        try:
            access_token = github_api.exchange_oauth_code(
                settings.github.client_id,
                settings.github.client_secret,
                code,
            )
        except GithubError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

        try:
            github_user = github_api.get_authenticated_user(access_token)
        except GithubError as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

        user_id = identities.find_user_by_external_id(github_user.login)
        if user_id is None:
            try:
                membership = github_api.get_if_member_of_org(access_token, settings.github.required_org)
            except GithubError as exc:
                raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
            if membership is None:
                logger.warning(
                    "Rejected login for %s: not a member of %s",
                    github_user.login,
                    settings.github.required_org,
                )
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="user not in org")
            user_id = identities.find_or_create_user(github_user.login, github_user.display_name)

        token = sessions.create_token(user_id)
        response = RedirectResponse(url=home_url, status_code=status.HTTP_302_FOUND)
        response.set_cookie(
            TOKEN_COOKIE,
            token,
            max_age=COOKIE_MAX_AGE,
            path="/",
            secure=settings.secure_cookies,
            httponly=True,
            samesite="lax",
        )
        return response

    return app


__all__ = ["ShaftRequest", "TransactionResponse", "UserResponse", "create_app"]
