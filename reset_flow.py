"""Password reset lifecycle: forgot -> emailed token -> reset -> logged in.

A token moves from pending to consumed exactly once (see
``CredentialStore.consume_reset_token``) or silently expires. Lookups that
miss and lookups that find an expired token fail identically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Tuple

from auth import Authenticator
from errors import (
    MailDeliveryFailure,
    NotFound,
    PasswordMismatch,
    TokenInvalidOrExpired,
    ValidationError,
)
from mail import Mailer
from models import CredentialStore, Session, User
from tokens import TokenIssuer

logger = logging.getLogger(__name__)

RESET_SUBJECT = "Password reset"
RESET_TEMPLATE = "password-reset"


@dataclass
class ForgotOutcome:
    user: User
    token: str
    expires: datetime
    reset_url: str


class ResetFlow:
    def __init__(
        self,
        store: CredentialStore,
        issuer: TokenIssuer,
        authenticator: Authenticator,
        mailer: Mailer,
    ) -> None:
        self.store = store
        self.issuer = issuer
        self.authenticator = authenticator
        self.mailer = mailer

    def forgot(self, email: str, build_reset_url: Callable[[str], str], now: Optional[datetime] = None) -> ForgotOutcome:
        user = self.store.get_by_email(email)
        if user is None:
            raise NotFound()
        token, expires = self.issuer.issue_reset_token(user, now=now)
        reset_url = build_reset_url(token)
        try:
            self.mailer.send(
                recipient=user.email,
                subject=RESET_SUBJECT,
                template_name=RESET_TEMPLATE,
                template_data={"user": user, "reset_url": reset_url, "expires": expires},
            )
        except MailDeliveryFailure as exc:
            logger.warning("Reset token issued for user %s but mail failed", user.id)
            raise MailDeliveryFailure(token=token) from exc
        return ForgotOutcome(user=user, token=token, expires=expires, reset_url=reset_url)

    def validate_token(self, token: str, now: Optional[datetime] = None) -> User:
        user = self.store.find_by_reset_token(token, now or datetime.utcnow())
        if user is None:
            raise TokenInvalidOrExpired()
        return user

    @staticmethod
    def confirmed_passwords(password: str, confirm: str) -> None:
        if password != confirm:
            raise PasswordMismatch()

    def update(
        self,
        token: str,
        now: Optional[datetime],
        new_password: str,
        confirm_password: str,
    ) -> Tuple[User, Session]:
        self.confirmed_passwords(new_password, confirm_password)
        if not new_password:
            raise ValidationError(["Password cannot be blank"])
        password_hash = self.authenticator.set_password(new_password)
        user = self.store.consume_reset_token(token, now or datetime.utcnow(), password_hash)
        if user is None:
            raise TokenInvalidOrExpired()
        logger.info("Password reset completed for user %s", user.id)
        session = self.authenticator.login(user)
        return user, session
