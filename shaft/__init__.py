"""Shaft: a ledger of who owes whom between a small group of users."""

from __future__ import annotations

from typing import Any

from .balances import BalanceEngine
from .database import Database, PostgresDatabase, SqliteDatabase, open_database, resolve_database_path
from .errors import Conflict, CorruptData, DecodeError, LedgerError, ResourceUnavailable, UnknownUser
from .identity import IdentityStore
from .ledger import Ledger
from .models import Transaction, User
from .sessions import SessionStore


def create_application(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "BalanceEngine",
    "Conflict",
    "CorruptData",
    "Database",
    "DecodeError",
    "IdentityStore",
    "Ledger",
    "LedgerError",
    "PostgresDatabase",
    "ResourceUnavailable",
    "SessionStore",
    "SqliteDatabase",
    "Transaction",
    "UnknownUser",
    "User",
    "create_application",
    "open_database",
    "resolve_database_path",
]
