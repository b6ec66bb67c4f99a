from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

from models import CredentialStore, User

logger = logging.getLogger(__name__)

RESET_TOKEN_BYTES = 20
RESET_TOKEN_TTL = timedelta(hours=1)


class TokenIssuer:
    """Mints single-use password reset tokens and stores them on the user."""

    def __init__(self, store: CredentialStore, ttl: timedelta = RESET_TOKEN_TTL) -> None:
        self.store = store
        self.ttl = ttl

    def issue_reset_token(self, user: User, now: Optional[datetime] = None) -> Tuple[str, datetime]:
        issued_at = now or datetime.utcnow()
        token = secrets.token_hex(RESET_TOKEN_BYTES)
        expires = issued_at + self.ttl
        # Raises PersistenceError; a reissue replaces whatever was written.
        self.store.set_reset_token(user.mongo_id, token, expires)
        logger.info("Issued password reset token for user %s, expires %s", user.id, expires.isoformat())
        return token, expires
