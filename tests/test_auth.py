import pytest

from auth import PasswordHasher
from errors import AuthFailure


def test_hasher_salts_and_verifies(hasher):
    first = hasher.hash("secret")
    second = hasher.hash("secret")

    assert first != second
    assert first.startswith("pbkdf2:sha256:1000$")
    assert hasher.verify(first, "secret")
    assert not hasher.verify(first, "Secret")


def test_hasher_rejects_empty_or_unknown_hash():
    hasher = PasswordHasher()
    assert not hasher.verify("", "secret")
    assert not hasher.verify("nonsense", "secret")


def test_authenticate_creates_session(authenticator, sessions, user):
    session = authenticator.authenticate("Wes@Delicious.io", "oldpass")

    assert sessions.get(session.id).user_id == user.mongo_id
    assert authenticator.is_authenticated(session.id)
    loaded = authenticator.user_for_session(session.id)
    assert loaded.id == user.id
    assert loaded.get_id() == session.id


def test_wrong_password_and_unknown_email_look_the_same(authenticator, user):
    with pytest.raises(AuthFailure) as wrong_password:
        authenticator.authenticate("wes@delicious.io", "nope")
    with pytest.raises(AuthFailure) as unknown_email:
        authenticator.authenticate("ghost@delicious.io", "oldpass")

    assert type(wrong_password.value) is type(unknown_email.value)
    assert wrong_password.value.message == unknown_email.value.message == "Invalid email or password"


def test_logout_is_idempotent(authenticator, user):
    session = authenticator.authenticate("wes@delicious.io", "oldpass")

    authenticator.logout(session.id)
    authenticator.logout(session.id)
    authenticator.logout(None)
    authenticator.logout("never-issued")

    assert not authenticator.is_authenticated(session.id)
    assert authenticator.user_for_session(session.id) is None


def test_is_authenticated_without_session(authenticator):
    assert not authenticator.is_authenticated(None)
    assert not authenticator.is_authenticated("")


def test_sessions_are_independent(authenticator, user):
    first = authenticator.authenticate("wes@delicious.io", "oldpass")
    second = authenticator.authenticate("wes@delicious.io", "oldpass")

    authenticator.logout(first.id)
    assert not authenticator.is_authenticated(first.id)
    assert authenticator.is_authenticated(second.id)


def test_user_record_hides_password_hash(user):
    assert "password_hash" not in user.to_dict()
    assert user.gravatar.startswith("https://gravatar.com/avatar/")
    assert user.gravatar.endswith("?s=200")


def test_user_record_hides_reset_token(issuer, store, user):
    issuer.issue_reset_token(user)
    pending = store.get(user.id)

    assert pending.has_pending_reset()
    view = pending.to_dict()
    assert "reset_password_token" not in view
    assert "reset_password_expires" not in view
    assert view["email"] == "wes@delicious.io"
