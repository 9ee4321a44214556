"""Domain models for users and ledger transactions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def to_timestamp(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def from_timestamp(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


@dataclass(frozen=True)
class User:
    """A known user and their balance at the time of the read."""

    user_id: str
    display_name: str
    balance: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "balance": self.balance,
        }


@dataclass(frozen=True)
class Transaction:
    """A single immutable entry in the ledger.

    ``amount`` is in the smallest currency unit. A positive amount means the
    shafter is owed that much by the shaftee; a negative amount means the
    shafter owes the shaftee.
    """

    shafter: str
    shaftee: str
    amount: int
    occurred_at: datetime
    reason: str

    @classmethod
    def create(
        cls,
        shafter: str,
        shaftee: str,
        amount: int,
        reason: str,
        *,
        occurred_at: Optional[datetime] = None,
    ) -> "Transaction":
        """Build a transaction stamped with the current time (second precision)."""

        stamp = occurred_at if occurred_at is not None else utc_now()
        return cls(
            shafter=shafter,
            shaftee=shaftee,
            amount=amount,
            occurred_at=from_timestamp(to_timestamp(stamp)),
            reason=reason,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "shafter": self.shafter,
            "shaftee": self.shaftee,
            "amount": self.amount,
            "datetime": to_timestamp(self.occurred_at),
            "reason": self.reason,
        }


__all__ = ["Transaction", "User", "from_timestamp", "to_timestamp", "utc_now"]
