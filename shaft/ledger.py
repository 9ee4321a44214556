"""Append-only log of transactions between users."""
from __future__ import annotations

import logging
from typing import List, Sequence

from .balances import decode_integer, decode_text, user_exists
from .database import Database
from .errors import CorruptData, UnknownUser
from .models import Transaction, from_timestamp, to_timestamp

logger = logging.getLogger("shaft.ledger")

DEFAULT_RECENT_LIMIT = 20

# Amounts are stored as signed 64-bit integers.
MIN_AMOUNT = -(2**63)
MAX_AMOUNT = 2**63 - 1


def _row_to_transaction(row: Sequence[object]) -> Transaction:
    if len(row) != 5:
        raise CorruptData(f"Expected 5 transaction columns, got {len(row)}")
    seconds = decode_integer(row[3], "occurred_at")
    try:
        occurred_at = from_timestamp(seconds)
    except (OverflowError, OSError, ValueError) as exc:
        raise CorruptData(f"Column occurred_at holds an invalid timestamp: {seconds}") from exc
    return Transaction(
        shafter=decode_text(row[0], "shafter"),
        shaftee=decode_text(row[1], "shaftee"),
        amount=decode_integer(row[2], "amount"),
        occurred_at=occurred_at,
        reason=decode_text(row[4], "reason"),
    )


class Ledger:
    """The single source of truth for who owes whom.

    Transactions are only ever inserted; corrections are new, offsetting
    transactions.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def append(self, transaction: Transaction) -> None:
        """Record ``transaction`` atomically.

        Both parties must exist; :class:`UnknownUser` names the shaftee first.
        Amounts outside the signed 64-bit range raise :class:`ValueError`.
        """

        if isinstance(transaction.amount, bool) or not isinstance(transaction.amount, int):
            raise TypeError("Transaction amount must be an integer")
        if not MIN_AMOUNT <= transaction.amount <= MAX_AMOUNT:
            raise ValueError(f"Transaction amount {transaction.amount} is out of range")
        if not isinstance(transaction.reason, str):
            raise TypeError("Transaction reason must be a string")

        with self._database.write() as conn:
            if not user_exists(conn, transaction.shaftee):
                raise UnknownUser(transaction.shaftee)
            if transaction.shafter != transaction.shaftee and not user_exists(conn, transaction.shafter):
                raise UnknownUser(transaction.shafter)
            conn.execute(
                """
                INSERT INTO transactions (shafter, shaftee, amount, occurred_at, reason)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    transaction.shafter,
                    transaction.shaftee,
                    transaction.amount,
                    to_timestamp(transaction.occurred_at),
                    transaction.reason,
                ),
            )

        logger.info(
            "%s shafted %s for %d",
            transaction.shafter,
            transaction.shaftee,
            transaction.amount,
        )

    def shaft(self, shafter: str, shaftee: str, amount: int, reason: str) -> Transaction:
        transaction = Transaction.create(shafter, shaftee, amount, reason)
        self.append(transaction)
        return transaction

    def recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> List[Transaction]:
        """Return up to ``limit`` transactions, most recently appended first."""

        if limit < 0:
            raise ValueError("limit must not be negative")
        if limit == 0:
            return []
        with self._database.read() as conn:
            rows = conn.fetchall(
                """
                SELECT shafter, shaftee, amount, occurred_at, reason
                FROM transactions
                ORDER BY id DESC
                LIMIT ?
                """,
                (limit,),
            )
        return [_row_to_transaction(row) for row in rows]


__all__ = ["DEFAULT_RECENT_LIMIT", "Ledger", "MAX_AMOUNT", "MIN_AMOUNT"]
