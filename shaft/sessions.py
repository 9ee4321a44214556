"""Opaque bearer tokens bound to users."""

from __future__ import annotations

import logging
import secrets
import string
from typing import Optional

from .balances import BALANCES_SUBQUERY, row_to_user, user_exists
from .database import Database
from .errors import UnknownUser
from .models import User

logger = logging.getLogger("shaft.sessions")

TOKEN_ALPHABET = string.ascii_letters + string.digits
TOKEN_LENGTH = 32


def generate_token(length: int = TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


class SessionStore:
    """Issue, resolve, and revoke session tokens.

    Tokens never expire; a token stays valid until it is revoked. A user may
    hold any number of live tokens.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def create_token(self, user_id: str) -> str:
        token = generate_token()
        with self._database.write() as conn:
            if not user_exists(conn, user_id):
                raise UnknownUser(user_id)
            conn.execute(
                "INSERT INTO sessions (token, user_id) VALUES (?, ?)",
                (token, user_id),
            )
        logger.info("Issued session token for user %s", user_id)
        return token

    def resolve_token(self, token: str) -> Optional[User]:
        """Return the token's user with a freshly computed balance, if any."""

        if not token:
            return None
        with self._database.read() as conn:
            row = conn.fetchone(
                f"""
                SELECT users.user_id, users.display_name, COALESCE(totals.balance, 0)
                FROM sessions
                INNER JOIN users ON users.user_id = sessions.user_id
                LEFT JOIN ({BALANCES_SUBQUERY}) AS totals ON totals.user_id = users.user_id
                WHERE sessions.token = ?
                """,
                (token,),
            )
        if row is None:
            return None
        return row_to_user(row)

    def revoke_token(self, token: str) -> None:
        with self._database.write() as conn:
            removed = conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
        if removed:
            logger.info("Revoked session token")


__all__ = ["SessionStore", "TOKEN_ALPHABET", "TOKEN_LENGTH", "generate_token"]
