"""Typed failures raised by the account services.

Every error carries a user-facing ``message`` that the route layer flashes
as-is, so messages here must never reveal more than the user may know.
"""

from __future__ import annotations

from typing import List, Optional


class AccountError(Exception):
    message = "Something went wrong"

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class NotFound(AccountError):
    message = "No account with that email exists"


class TokenInvalidOrExpired(AccountError):
    message = "Password reset token is invalid or has expired"


class PasswordMismatch(AccountError):
    message = "Passwords do not match"


class AuthFailure(AccountError):
    message = "Invalid email or password"


class DuplicateAccount(AccountError):
    message = "An account with this email already exists"


class PersistenceError(AccountError):
    message = "We could not save your changes, please try again later"


class ValidationError(AccountError):
    message = "Please fix the errors below"

    def __init__(self, errors: List[str]) -> None:
        super().__init__()
        self.errors = list(errors)


class MailDeliveryFailure(AccountError):
    message = "A reset token was issued, but we could not email it. Please try again."

    def __init__(self, message: Optional[str] = None, token: Optional[str] = None) -> None:
        super().__init__(message)
        self.token = token
