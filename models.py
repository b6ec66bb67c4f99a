from __future__ import annotations

import hashlib
import secrets
from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from flask_login import UserMixin
from pymongo import ASCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import DuplicateAccount, PersistenceError


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if value in (None, ""):
        return None
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class MongoDocument:
    def __init__(self, data: Optional[Dict[str, Any]] = None) -> None:
        self._data = data or {}

    def __getattr__(self, item: str) -> Any:
        if item.startswith("_"):
            raise AttributeError(item)
        if item == "id":
            _id = self._data.get("_id")
            return str(_id) if _id is not None else None
        value = self._data.get(item)
        if isinstance(value, ObjectId):
            return str(value)
        return value

    @property
    def mongo_id(self) -> Any:
        return self._data.get("_id")

    def to_dict(self) -> Dict[str, Any]:
        payload = dict(self._data)
        if "_id" in payload:
            payload["id"] = str(payload.pop("_id"))
        for secret in ("password_hash", "reset_password_token", "reset_password_expires"):
            payload.pop(secret, None)
        return payload


class User(UserMixin, MongoDocument):
    """A user record. Flask-Login identifies it by its server-side session id."""

    def __init__(self, data: Optional[Dict[str, Any]] = None, session_id: Optional[str] = None) -> None:
        super().__init__(data)
        self.session_id = session_id

    def get_id(self) -> Optional[str]:
        return self.session_id

    @property
    def password_hash(self) -> str:
        return self._data.get("password_hash", "")

    @property
    def gravatar(self) -> str:
        digest = hashlib.md5(normalize_email(self._data.get("email", "")).encode("utf-8")).hexdigest()
        return f"https://gravatar.com/avatar/{digest}?s=200"

    def has_pending_reset(self) -> bool:
        return bool(self._data.get("reset_password_token"))


class Session(MongoDocument):
    @property
    def user_id(self) -> Optional[ObjectId]:
        return self._data.get("user_id")


class CredentialStore:
    """User persistence on the ``users`` collection.

    Reset token and expiry are always written (and removed) by the same
    update document so a record never holds one without the other.
    """

    def __init__(self, db: Database) -> None:
        self.users = db["users"]

    def ensure_indexes(self) -> None:
        self.users.create_index("email_lower", unique=True)
        self.users.create_index("reset_password_token", sparse=True)

    def get(self, user_id: Any) -> Optional[User]:
        oid = to_object_id(user_id)
        if not oid:
            return None
        try:
            doc = self.users.find_one({"_id": oid})
        except PyMongoError as exc:
            raise PersistenceError() from exc
        return User(doc) if doc else None

    def get_by_email(self, email: str) -> Optional[User]:
        normalized = normalize_email(email)
        if not normalized:
            return None
        try:
            doc = self.users.find_one({"email_lower": normalized})
        except PyMongoError as exc:
            raise PersistenceError() from exc
        return User(doc) if doc else None

    def find_by_reset_token(self, token: str, now: datetime) -> Optional[User]:
        if not token or not isinstance(token, str):
            return None
        try:
            doc = self.users.find_one(
                {
                    "reset_password_token": token,
                    "reset_password_expires": {"$gt": now},
                }
            )
        except PyMongoError as exc:
            raise PersistenceError() from exc
        return User(doc) if doc else None

    def create_user(self, name: str, email: str, password_hash: str) -> User:
        doc = {
            "name": name,
            "email": normalize_email(email),
            "email_lower": normalize_email(email),
            "password_hash": password_hash,
            "created_at": datetime.utcnow(),
        }
        try:
            result = self.users.insert_one(doc)
        except DuplicateKeyError as exc:
            raise DuplicateAccount() from exc
        except PyMongoError as exc:
            raise PersistenceError() from exc
        doc["_id"] = result.inserted_id
        return User(doc)

    def update_account(self, user_id: Any, name: str, email: str) -> User:
        updates = {
            "name": name,
            "email": normalize_email(email),
            "email_lower": normalize_email(email),
        }
        try:
            doc = self.users.find_one_and_update(
                {"_id": to_object_id(user_id)},
                {"$set": updates},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as exc:
            raise DuplicateAccount() from exc
        except PyMongoError as exc:
            raise PersistenceError() from exc
        if not doc:
            raise PersistenceError()
        return User(doc)

    def set_reset_token(self, user_id: Any, token: str, expires: datetime) -> None:
        try:
            result = self.users.update_one(
                {"_id": to_object_id(user_id)},
                {"$set": {"reset_password_token": token, "reset_password_expires": expires}},
            )
        except PyMongoError as exc:
            raise PersistenceError() from exc
        if result.matched_count != 1:
            raise PersistenceError()

    def consume_reset_token(self, token: str, now: datetime, password_hash: str) -> Optional[User]:
        """Swap the password and clear the token in one conditional write.

        Returns ``None`` when no record still holds ``token`` unexpired at
        ``now``, including when a concurrent call consumed it first.
        """
        if not token or not isinstance(token, str):
            return None
        try:
            doc = self.users.find_one_and_update(
                {
                    "reset_password_token": token,
                    "reset_password_expires": {"$gt": now},
                },
                {
                    "$set": {"password_hash": password_hash},
                    "$unset": {"reset_password_token": "", "reset_password_expires": ""},
                },
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            raise PersistenceError() from exc
        return User(doc) if doc else None

    def clear_expired_resets(self, now: datetime, dry_run: bool = False) -> int:
        query = {"reset_password_expires": {"$lte": now}}
        try:
            if dry_run:
                return self.users.count_documents(query)
            result = self.users.update_many(
                query,
                {"$unset": {"reset_password_token": "", "reset_password_expires": ""}},
            )
        except PyMongoError as exc:
            raise PersistenceError() from exc
        return result.modified_count


class SessionStore:
    def __init__(self, db: Database) -> None:
        self.sessions = db["sessions"]

    def ensure_indexes(self) -> None:
        self.sessions.create_index([("user_id", ASCENDING)])

    def create(self, user_id: Any) -> Session:
        doc = {
            "_id": secrets.token_urlsafe(32),
            "user_id": to_object_id(user_id),
            "created_at": datetime.utcnow(),
        }
        try:
            self.sessions.insert_one(doc)
        except PyMongoError as exc:
            raise PersistenceError() from exc
        return Session(doc)

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        try:
            doc = self.sessions.find_one({"_id": str(session_id)})
        except PyMongoError as exc:
            raise PersistenceError() from exc
        return Session(doc) if doc else None

    def delete(self, session_id: Optional[str]) -> None:
        if not session_id:
            return
        try:
            self.sessions.delete_one({"_id": str(session_id)})
        except PyMongoError as exc:
            raise PersistenceError() from exc
