from typing import Any, Dict, List

import mongomock
import pytest

from auth import Authenticator, PasswordHasher
from errors import MailDeliveryFailure
from mail import Mailer
from models import CredentialStore, SessionStore
from reset_flow import ResetFlow
from tokens import TokenIssuer

FAST_HASH = "pbkdf2:sha256:1000"


class RecordingMailer(Mailer):
    """Renders real templates but keeps messages in memory."""

    def __init__(self) -> None:
        super().__init__()
        self.sent: List[Dict[str, Any]] = []
        self.fail = False

    def send(self, recipient, subject, template_name, template_data):
        html, text = self.render(template_name, template_data)
        if self.fail:
            raise MailDeliveryFailure()
        self.sent.append(
            {
                "recipient": recipient,
                "subject": subject,
                "template_name": template_name,
                "template_data": template_data,
                "text": text,
                "html": html,
            }
        )


@pytest.fixture
def db():
    return mongomock.MongoClient()["delicious_stores_test"]


@pytest.fixture
def store(db):
    credential_store = CredentialStore(db)
    credential_store.ensure_indexes()
    return credential_store


@pytest.fixture
def sessions(db):
    return SessionStore(db)


@pytest.fixture
def hasher():
    return PasswordHasher(FAST_HASH)


@pytest.fixture
def authenticator(store, sessions, hasher):
    return Authenticator(store, sessions, hasher)


@pytest.fixture
def issuer(store):
    return TokenIssuer(store)


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def flow(store, issuer, authenticator, mailer):
    return ResetFlow(store, issuer, authenticator, mailer)


@pytest.fixture
def user(store, hasher):
    return store.create_user("Wes", "wes@delicious.io", hasher.hash("oldpass"))


@pytest.fixture
def app(db, mailer):
    from app import create_app

    return create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "SERVER_NAME": "localhost",
            "PASSWORD_HASH_METHOD": FAST_HASH,
        },
        db=db,
        mailer=mailer,
    )


@pytest.fixture
def client(app):
    return app.test_client()
