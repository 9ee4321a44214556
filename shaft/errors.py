"""Error taxonomy shared by the persistence gateway and the ledger stores."""
from __future__ import annotations


class LedgerError(Exception):
    """Base class for failures raised by the ledger core."""


class ResourceUnavailable(LedgerError):
    """A connection could not be acquired or the storage engine faulted."""


class UnknownUser(LedgerError):
    """A referenced user does not exist."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Unknown user: {user_id}")
        self.user_id = user_id


class Conflict(LedgerError):
    """A row that must be unique already exists."""


class CorruptData(LedgerError):
    """Stored data does not have the expected shape."""


DecodeError = CorruptData


__all__ = [
    "Conflict",
    "CorruptData",
    "DecodeError",
    "LedgerError",
    "ResourceUnavailable",
    "UnknownUser",
]
