from __future__ import annotations

import pytest

from shaft.errors import Conflict, UnknownUser
from shaft.identity import IdentityStore
from shaft.models import User


@pytest.fixture()
def identities(database) -> IdentityStore:
    return IdentityStore(database)


def test_find_unknown_external_id_returns_none(identities: IdentityStore) -> None:
    assert identities.find_user_by_external_id("gh:404") is None


def test_create_user_links_external_identity(identities: IdentityStore) -> None:
    user_id = identities.create_user("gh:42", "Alice")

    assert identities.find_user_by_external_id("gh:42") == user_id
    assert identities.get_user(user_id) == User(user_id=user_id, display_name="Alice", balance=0)


def test_user_id_is_derived_from_external_id(identities: IdentityStore) -> None:
    assert identities.create_user("  octocat ", "The Octocat") == "octocat"


def test_create_user_twice_conflicts(identities: IdentityStore) -> None:
    identities.create_user("gh:42", "Alice")

    with pytest.raises(Conflict):
        identities.create_user("gh:42", "Alice again")

    assert identities.get_user("gh:42").display_name == "Alice"


@pytest.mark.parametrize("external_id, display_name", [("", "Alice"), ("gh:1", "   ")])
def test_create_user_rejects_blank_values(identities: IdentityStore, external_id: str, display_name: str) -> None:
    with pytest.raises(ValueError):
        identities.create_user(external_id, display_name)


def test_find_or_create_user_is_stable(identities: IdentityStore) -> None:
    first = identities.find_or_create_user("gh:7", "Bob")
    second = identities.find_or_create_user("gh:7", "Robert")

    assert first == second
    assert identities.get_user(first).display_name == "Bob"


def test_set_display_name(identities: IdentityStore) -> None:
    user_id = identities.create_user("gh:42", "Alice")

    updated = identities.set_display_name(user_id, "Alice Liddell")

    assert updated.display_name == "Alice Liddell"
    assert identities.get_user(user_id).display_name == "Alice Liddell"


def test_set_display_name_for_unknown_user(identities: IdentityStore) -> None:
    with pytest.raises(UnknownUser) as excinfo:
        identities.set_display_name("ghost", "Nobody")
    assert excinfo.value.user_id == "ghost"


def test_get_unknown_user_returns_none(identities: IdentityStore) -> None:
    assert identities.get_user("ghost") is None
