"""Form validation for registration and account edits.

These helpers never touch the database: they collect every problem with the
submitted fields so the form can show them all at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from email_validator import EmailNotValidError, validate_email
from markupsafe import escape

from models import normalize_email


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def _clean_name(raw: Any) -> str:
    return str(escape((raw or "").strip()))


def _is_email(value: str) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _check_identity(fields: Mapping[str, Any], result: ValidationResult) -> None:
    name = _clean_name(fields.get("name"))
    if not name:
        result.errors.append("You must supply a name")
    email = normalize_email(fields.get("email") or "")
    if not email or not _is_email(email):
        result.errors.append("That email is not valid")
    result.data["name"] = name
    result.data["email"] = email


def validate_registration(fields: Mapping[str, Any]) -> ValidationResult:
    result = ValidationResult()
    _check_identity(fields, result)
    password = fields.get("password") or ""
    confirm = fields.get("password-confirm") or ""
    if not password:
        result.errors.append("Password cannot be blank")
    if not confirm:
        result.errors.append("Confirmed password cannot be blank")
    if confirm != password:
        result.errors.append("Oops! Your passwords do not match")
    result.data["password"] = password
    return result


def validate_account_update(fields: Mapping[str, Any]) -> ValidationResult:
    result = ValidationResult()
    _check_identity(fields, result)
    return result
