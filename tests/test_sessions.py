from __future__ import annotations

import pytest

from shaft.errors import UnknownUser
from shaft.identity import IdentityStore
from shaft.ledger import Ledger
from shaft.models import User
from shaft.sessions import TOKEN_ALPHABET, TOKEN_LENGTH, SessionStore, generate_token


@pytest.fixture()
def sessions(database) -> SessionStore:
    return SessionStore(database)


@pytest.fixture()
def identities(database) -> IdentityStore:
    return IdentityStore(database)


def test_session_lifecycle(identities: IdentityStore, sessions: SessionStore) -> None:
    user_id = identities.create_user("gh:42", "Alice")

    token = sessions.create_token(user_id)
    assert len(token) >= 32

    assert sessions.resolve_token(token) == User(user_id=user_id, display_name="Alice", balance=0)

    sessions.revoke_token(token)
    assert sessions.resolve_token(token) is None


def test_revoke_is_idempotent(identities: IdentityStore, sessions: SessionStore) -> None:
    token = sessions.create_token(identities.create_user("gh:1", "Alice"))

    sessions.revoke_token(token)
    sessions.revoke_token(token)
    sessions.revoke_token("never-issued")

    assert sessions.resolve_token(token) is None


def test_create_token_for_unknown_user(sessions: SessionStore) -> None:
    with pytest.raises(UnknownUser) as excinfo:
        sessions.create_token("ghost")
    assert excinfo.value.user_id == "ghost"


def test_multiple_live_tokens_per_user(identities: IdentityStore, sessions: SessionStore) -> None:
    user_id = identities.create_user("gh:1", "Alice")
    laptop = sessions.create_token(user_id)
    phone = sessions.create_token(user_id)

    assert laptop != phone
    sessions.revoke_token(laptop)

    assert sessions.resolve_token(laptop) is None
    assert sessions.resolve_token(phone).user_id == user_id


def test_resolve_reflects_current_balance(database, identities: IdentityStore, sessions: SessionStore) -> None:
    alice = identities.create_user("alice", "Alice")
    bob = identities.create_user("bob", "Bob")
    token = sessions.create_token(bob)

    Ledger(database).shaft(alice, bob, 250, "coffee")

    assert sessions.resolve_token(token).balance == -250


def test_resolve_empty_or_unknown_token(sessions: SessionStore) -> None:
    assert sessions.resolve_token("") is None
    assert sessions.resolve_token("x" * TOKEN_LENGTH) is None


def test_generated_tokens_are_alphanumeric() -> None:
    tokens = {generate_token() for _ in range(50)}

    assert len(tokens) == 50
    for token in tokens:
        assert len(token) == TOKEN_LENGTH
        assert set(token) <= set(TOKEN_ALPHABET)
