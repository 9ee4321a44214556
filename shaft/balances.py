"""Balances derived from the transaction log on every read."""
from __future__ import annotations

from decimal import Decimal
from typing import Dict, Optional, Sequence

from .database import Connection, Database
from .errors import CorruptData
from .models import User

# Net position per user that has at least one transaction. Users without any
# transactions are absent and must be defaulted to zero by the caller.
BALANCES_SUBQUERY = """
    SELECT user_id, SUM(amount) AS balance
    FROM (
        SELECT shafter AS user_id, amount FROM transactions
        UNION ALL
        SELECT shaftee AS user_id, -amount AS amount FROM transactions
    ) AS entries
    GROUP BY user_id
"""

USER_WITH_BALANCE_SELECT = f"""
    SELECT users.user_id, users.display_name, COALESCE(totals.balance, 0) AS balance
    FROM users
    LEFT JOIN ({BALANCES_SUBQUERY}) AS totals ON totals.user_id = users.user_id
"""


def decode_integer(value: object, column: str) -> int:
    """Coerce a stored integer column, rejecting anything that is not integral."""

    if isinstance(value, bool):
        raise CorruptData(f"Column {column} holds a boolean, expected an integer")
    if isinstance(value, int):
        return value
    # PostgreSQL widens SUM(BIGINT) to NUMERIC
    if isinstance(value, Decimal) and value == value.to_integral_value():
        return int(value)
    raise CorruptData(f"Column {column} holds {value!r}, expected an integer")


def decode_text(value: object, column: str) -> str:
    if not isinstance(value, str):
        raise CorruptData(f"Column {column} holds {value!r}, expected text")
    return value


def row_to_user(row: Sequence[object]) -> User:
    if len(row) != 3:
        raise CorruptData(f"Expected 3 user columns, got {len(row)}")
    return User(
        user_id=decode_text(row[0], "user_id"),
        display_name=decode_text(row[1], "display_name"),
        balance=decode_integer(row[2], "balance"),
    )


def fetch_user(conn: Connection, user_id: str) -> Optional[User]:
    """Load one user with their current balance inside an open unit of work."""

    row = conn.fetchone(f"{USER_WITH_BALANCE_SELECT} WHERE users.user_id = ?", (user_id,))
    if row is None:
        return None
    return row_to_user(row)


def user_exists(conn: Connection, user_id: str) -> bool:
    return conn.fetchone("SELECT 1 FROM users WHERE user_id = ?", (user_id,)) is not None


class BalanceEngine:
    """Compute balances as ``sum(amount as shafter) - sum(amount as shaftee)``.

    Nothing is cached: each call aggregates the committed transactions, so a
    read either fully reflects a concurrent append or does not see it at all.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def balance_of(self, user_id: str) -> int:
        """Return the net balance for ``user_id`` (zero when it has no transactions)."""

        with self._database.read() as conn:
            row = conn.fetchone(
                """
                SELECT (
                    SELECT COALESCE(SUM(amount), 0) FROM transactions WHERE shafter = ?
                ) - (
                    SELECT COALESCE(SUM(amount), 0) FROM transactions WHERE shaftee = ?
                )
                """,
                (user_id, user_id),
            )
        if row is None:
            raise CorruptData("Balance query returned no rows")
        return decode_integer(row[0], "balance")

    def all_balances(self) -> Dict[str, User]:
        """Return every known user keyed by id, most indebted first.

        The mapping preserves ascending balance order; ties are ordered by
        ``user_id`` so the result is deterministic.
        """

        with self._database.read() as conn:
            rows = conn.fetchall(
                f"{USER_WITH_BALANCE_SELECT} ORDER BY balance ASC, users.user_id ASC"
            )
        users = [row_to_user(row) for row in rows]
        return {user.user_id: user for user in users}


__all__ = [
    "BALANCES_SUBQUERY",
    "BalanceEngine",
    "USER_WITH_BALANCE_SELECT",
    "decode_integer",
    "decode_text",
    "fetch_user",
    "row_to_user",
    "user_exists",
]
