from datetime import datetime, timedelta

import pytest

from errors import PersistenceError
from models import User

T0 = datetime(2024, 3, 1, 12, 0, 0)


def test_issue_sets_token_and_expiry_together(issuer, store, user):
    token, expires = issuer.issue_reset_token(user, now=T0)

    assert len(token) == 40
    int(token, 16)
    assert expires == T0 + timedelta(milliseconds=3600000)
    doc = store.users.find_one({"_id": user.mongo_id})
    assert doc["reset_password_token"] == token
    assert doc["reset_password_expires"] == expires


def test_tokens_are_unique_per_issue(issuer, user):
    first, _ = issuer.issue_reset_token(user, now=T0)
    second, _ = issuer.issue_reset_token(user, now=T0)
    assert first != second


def test_reissue_replaces_pending_token(issuer, store, user):
    old, _ = issuer.issue_reset_token(user, now=T0)
    new, _ = issuer.issue_reset_token(user, now=T0 + timedelta(minutes=5))

    assert store.find_by_reset_token(old, T0) is None
    assert store.find_by_reset_token(new, T0).id == user.id


def test_issue_for_missing_user_raises_persistence_error(issuer):
    ghost = User({"_id": "5f1d7f0e2b3c4d5e6f708192"})
    with pytest.raises(PersistenceError):
        issuer.issue_reset_token(ghost, now=T0)
