from __future__ import annotations

import logging
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from errors import AuthFailure
from models import CredentialStore, Session, SessionStore, User

logger = logging.getLogger(__name__)


class PasswordHasher:
    """Salted adaptive hashing via werkzeug (scrypt unless a method is given).

    The salt lives inside the stored hash string, so a single field holds
    the whole credential.
    """

    def __init__(self, method: Optional[str] = None) -> None:
        self.method = method

    def hash(self, password: str) -> str:
        if self.method:
            return generate_password_hash(password, method=self.method)
        return generate_password_hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        if not password_hash:
            return False
        try:
            return check_password_hash(password_hash, password)
        except ValueError:
            # unknown or malformed hash method
            return False


class Authenticator:
    def __init__(self, store: CredentialStore, sessions: SessionStore, hasher: Optional[PasswordHasher] = None) -> None:
        self.store = store
        self.sessions = sessions
        self.hasher = hasher or PasswordHasher()
        self._dummy_hash = self.hasher.hash("not-a-real-password")

    def set_password(self, password: str) -> str:
        return self.hasher.hash(password)

    def authenticate(self, email: str, password: str) -> Session:
        user = self.store.get_by_email(email)
        if user is None:
            # Keep the unknown-email path as slow as a real check.
            self.hasher.verify(self._dummy_hash, password or "")
            logger.info("Failed login for unknown email")
            raise AuthFailure()
        if not self.hasher.verify(user.password_hash, password or ""):
            logger.info("Failed login for user %s", user.id)
            raise AuthFailure()
        return self.login(user)

    def login(self, user: User) -> Session:
        session = self.sessions.create(user.mongo_id)
        user.session_id = session.id
        logger.info("User %s logged in", user.id)
        return session

    def logout(self, session_id: Optional[str]) -> None:
        self.sessions.delete(session_id)

    def is_authenticated(self, session_id: Optional[str]) -> bool:
        return self.user_for_session(session_id) is not None

    def user_for_session(self, session_id: Optional[str]) -> Optional[User]:
        session = self.sessions.get(session_id)
        if session is None:
            return None
        user = self.store.get(session.user_id)
        if user is None:
            return None
        user.session_id = session.id
        return user
