from datetime import datetime

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from errors import PersistenceError

T0 = datetime(2024, 3, 1, 12, 0, 0)


class UnreachableCollection:
    """Every collection method fails as if the server were down."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise ServerSelectionTimeoutError("No servers found yet")

        return fail


@pytest.fixture
def accounts(app):
    return app.extensions["accounts"]


@pytest.mark.parametrize(
    "call",
    [
        lambda store: store.get("5f1d7f0e2b3c4d5e6f708192"),
        lambda store: store.get_by_email("wes@delicious.io"),
        lambda store: store.find_by_reset_token("a" * 40, T0),
        lambda store: store.create_user("Wes", "wes@delicious.io", "hash"),
        lambda store: store.update_account("5f1d7f0e2b3c4d5e6f708192", "Wes", "wes@delicious.io"),
        lambda store: store.set_reset_token("5f1d7f0e2b3c4d5e6f708192", "a" * 40, T0),
        lambda store: store.consume_reset_token("a" * 40, T0, "hash"),
        lambda store: store.clear_expired_resets(T0),
    ],
)
def test_credential_store_wraps_driver_errors(store, monkeypatch, call):
    monkeypatch.setattr(store, "users", UnreachableCollection())
    with pytest.raises(PersistenceError) as excinfo:
        call(store)
    assert isinstance(excinfo.value.__cause__, ServerSelectionTimeoutError)


@pytest.mark.parametrize(
    "call",
    [
        lambda sessions: sessions.create("5f1d7f0e2b3c4d5e6f708192"),
        lambda sessions: sessions.get("some-session"),
        lambda sessions: sessions.delete("some-session"),
    ],
)
def test_session_store_wraps_driver_errors(sessions, monkeypatch, call):
    monkeypatch.setattr(sessions, "sessions", UnreachableCollection())
    with pytest.raises(PersistenceError):
        call(sessions)


def test_login_during_outage_shows_generic_message(client, accounts, monkeypatch):
    monkeypatch.setattr(accounts["store"], "users", UnreachableCollection())

    res = client.post("/login", data={"email": "wes@delicious.io", "password": "hunter22"})

    assert res.status_code == 503
    assert PersistenceError.message in res.get_data(as_text=True)


def test_logged_in_user_during_outage_is_not_redirected_in_a_loop(client, accounts, monkeypatch):
    client.post(
        "/register",
        data={
            "name": "Wes",
            "email": "wes@delicious.io",
            "password": "hunter22",
            "password-confirm": "hunter22",
        },
    )
    assert client.get("/account").status_code == 200

    monkeypatch.setattr(accounts["sessions"], "sessions", UnreachableCollection())

    res = client.get("/")
    assert res.status_code == 200
    assert "Log In" in res.get_data(as_text=True)

    res = client.get("/account")
    assert res.status_code == 302
    assert "/login" in res.headers["Location"]
