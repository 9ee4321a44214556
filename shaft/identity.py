"""Mapping between external login identities and local users."""
from __future__ import annotations

import logging
from typing import Optional

from .balances import decode_text, fetch_user
from .database import Database
from .errors import Conflict, UnknownUser
from .models import User

logger = logging.getLogger("shaft.identity")


def _require_text(value: str, field: str) -> str:
    normalized = (value or "").strip()
    if not normalized:
        raise ValueError(f"{field} must not be empty")
    return normalized


class IdentityStore:
    """Create and look up users keyed by an external identity.

    The local ``user_id`` is the external identifier itself, so retrying a
    creation always targets the same id.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def find_user_by_external_id(self, external_id: str) -> Optional[str]:
        with self._database.read() as conn:
            row = conn.fetchone(
                "SELECT user_id FROM external_identities WHERE external_id = ?",
                (external_id,),
            )
        if row is None:
            return None
        return decode_text(row[0], "user_id")

    def create_user(self, external_id: str, display_name: str) -> str:
        """Create a user and link it to ``external_id`` in one transaction.

        Raises :class:`Conflict` if the external identity is already linked.
        """

        external_id = _require_text(external_id, "external_id")
        display_name = _require_text(display_name, "display_name")
        user_id = external_id

        with self._database.write() as conn:
            existing = conn.fetchone(
                "SELECT user_id FROM external_identities WHERE external_id = ?",
                (external_id,),
            )
            if existing is not None:
                raise Conflict(f"External identity {external_id!r} is already linked")
            conn.execute(
                "INSERT INTO users (user_id, display_name) VALUES (?, ?)",
                (user_id, display_name),
            )
            conn.execute(
                "INSERT INTO external_identities (external_id, user_id) VALUES (?, ?)",
                (external_id, user_id),
            )

        logger.info("Created user %s (%s)", user_id, display_name)
        return user_id

    def find_or_create_user(self, external_id: str, display_name: str) -> str:
        user_id = self.find_user_by_external_id(external_id)
        if user_id is not None:
            return user_id
        try:
            return self.create_user(external_id, display_name)
        except Conflict:
            # Lost a race with a concurrent login for the same identity.
            user_id = self.find_user_by_external_id(external_id)
            if user_id is None:
                raise
            return user_id

    def get_user(self, user_id: str) -> Optional[User]:
        with self._database.read() as conn:
            return fetch_user(conn, user_id)

    def set_display_name(self, user_id: str, display_name: str) -> User:
        display_name = _require_text(display_name, "display_name")
        with self._database.write() as conn:
            updated = conn.execute(
                "UPDATE users SET display_name = ? WHERE user_id = ?",
                (display_name, user_id),
            )
            if updated == 0:
                raise UnknownUser(user_id)
            user = fetch_user(conn, user_id)
        if user is None:
            raise UnknownUser(user_id)
        return user


__all__ = ["IdentityStore"]
