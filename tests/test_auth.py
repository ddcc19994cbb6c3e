from datetime import timedelta

import pytest

from hikepad_dashboard.auth import (
    authenticate,
    find_user_by_token,
    hash_password,
    hash_token,
    issue_reset_token,
    prepare_access_links,
    set_password_with_token,
    utcnow,
    verify_password,
)
from hikepad_dashboard.config import BRANCHES, USERS_COLLECTION
from hikepad_dashboard.db import InvalidUpdateError, RecordNotFoundError

from .conftest import HYD


@pytest.fixture
def users(db):
    db[USERS_COLLECTION].insert_many([
        {"name": "Asha Kumar", "email": "asha@example.com", "role": "Admin",
         "branch": HYD, "password": hash_password("secret1")},
        {"name": "Dev Rao", "email": "dev@example.com", "role": "Deputy Branch Manager",
         "branch": HYD, "password": hash_password("dbmpass")},
        {"name": "Bala Nair", "email": None, "role": "Business Development Executive",
         "branch": HYD, "password": None},
    ])
    return db


def test_hash_and_verify_password():
    stored = hash_password("secret1")
    assert stored.startswith("$2")
    assert verify_password("secret1", stored)
    assert not verify_password("wrong", stored)
    assert not verify_password("secret1", None)
    assert not verify_password("secret1", "not-a-bcrypt-hash")


def test_authenticate_by_email_and_name(users):
    ok, info = authenticate(users, "asha@example.com", "secret1")
    assert ok
    assert info["name"] == "Asha Kumar"
    assert info["branches"] == BRANCHES

    ok, info = authenticate(users, "Dev Rao", "dbmpass")
    assert ok
    assert info["branches"] == [HYD]
    assert "password" not in info


@pytest.mark.parametrize("user_id,password,error", [
    ("asha@example.com", "wrong", "Invalid user or password"),
    ("nobody@example.com", "secret1", "Invalid user or password"),
    ("Bala Nair", "anything", "not fully set up"),
    ("", "secret1", "Missing credentials"),
])
def test_authenticate_failures(users, user_id, password, error):
    ok, info = authenticate(users, user_id, password)
    assert not ok
    assert error in info["error"]


def test_token_is_stored_as_digest(users):
    token = issue_reset_token(users, {"name": "Bala Nair"}, timedelta(minutes=60))

    stored = users[USERS_COLLECTION].find_one({"name": "Bala Nair"})
    assert len(token) == 64
    assert stored["reset_token"] == hash_token(token)
    assert find_user_by_token(users, token)["name"] == "Bala Nair"
    assert find_user_by_token(users, "not-a-token") is None


def test_issue_token_for_unknown_user(users):
    with pytest.raises(RecordNotFoundError):
        issue_reset_token(users, {"name": "Nobody"}, timedelta(minutes=60))


def test_expired_token_is_rejected(users):
    token = issue_reset_token(users, {"name": "Bala Nair"}, timedelta(minutes=60))
    users[USERS_COLLECTION].update_one(
        {"name": "Bala Nair"}, {"$set": {"reset_token_expires": utcnow() - timedelta(minutes=1)}}
    )

    assert find_user_by_token(users, token) is None
    with pytest.raises(RecordNotFoundError):
        set_password_with_token(users, token, "newpass")


def test_set_password_with_token_clears_token(users):
    token = issue_reset_token(users, {"name": "Bala Nair"}, timedelta(minutes=60))

    set_password_with_token(users, token, "newpass")

    stored = users[USERS_COLLECTION].find_one({"name": "Bala Nair"})
    assert verify_password("newpass", stored["password"])
    assert "reset_token" not in stored
    assert find_user_by_token(users, token) is None
    ok, _ = authenticate(users, "Bala Nair", "newpass")
    assert ok


def test_set_password_enforces_length(users):
    token = issue_reset_token(users, {"name": "Bala Nair"}, timedelta(minutes=60))
    with pytest.raises(InvalidUpdateError):
        set_password_with_token(users, token, "123")


def test_prepare_access_links(users):
    links = prepare_access_links(users, ["Asha Kumar", "Dev Rao"], timedelta(hours=24))

    assert {link["name"] for link in links} == {"Asha Kumar", "Dev Rao"}
    for link in links:
        assert "/set-password?token=" in link["reset_link"]

    with pytest.raises(RecordNotFoundError):
        prepare_access_links(users, ["Nobody"], timedelta(hours=24))
