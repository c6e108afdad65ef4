"""Account-record capabilities: changeset validation, password checks and predicates.

The concrete implementation is chosen once at start-up from
``Settings.user_schema`` and handed to the engine; nothing dispatches on it per
call.
"""

from __future__ import annotations

import importlib
from typing import Any, Mapping, Protocol

from pydantic import BaseModel, EmailStr, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from schemas import AccountView

from ..config import Settings
from ..security.passwords import PasswordHasher
from .account import Account
from .errors import ValidationError
from .responses import error_map


class UserSchema(Protocol):
    def validate_email(self, email: Any) -> str: ...

    def validate_password(self, password: Any, confirmation: Any = None) -> str: ...

    def validate_registration(self, params: Mapping[str, Any]) -> dict[str, Any]: ...

    def validate_profile(self, account: Account, params: Mapping[str, Any]) -> dict[str, Any]: ...

    def validate_blocked(self, reason: Any) -> dict[str, Any]: ...

    def hash_password(self, plaintext: str) -> str: ...

    def check_password(self, plaintext: str | None, password_hash: str | None) -> bool: ...

    def is_locked(self, account: Account) -> bool: ...

    def is_confirmed(self, account: Account) -> bool: ...

    def render(self, account: Account) -> dict[str, Any]: ...


class EmailForm(BaseModel):
    email: EmailStr


class PasswordForm(BaseModel):
    password: str
    password_confirmation: str | None = None

    @field_validator("password_confirmation")
    @classmethod
    def _matches(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is not None and value != info.data.get("password"):
            raise ValueError("does not match password")
        return value


class RegistrationForm(PasswordForm):
    email: EmailStr
    name: str | None = Field(default=None, max_length=255)


class ProfileForm(BaseModel):
    email: EmailStr | None = None
    name: str | None = Field(default=None, max_length=255)
    password: str | None = None
    password_confirmation: str | None = None
    current_password: str | None = None

    @field_validator("password_confirmation")
    @classmethod
    def _matches(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is not None and value != info.data.get("password"):
            raise ValueError("does not match password")
        return value


class BlockForm(BaseModel):
    reason: str | None = Field(default=None, max_length=255)


class DefaultUserSchema:
    """Pydantic-validated account schema with argon2 credentials."""

    def __init__(self, settings: Settings, hasher: PasswordHasher | None = None) -> None:
        self._min_length = settings.password_min_length
        self._hasher = hasher or PasswordHasher.from_settings(settings)

    def validate_email(self, email: Any) -> str:
        form = self._parse(EmailForm, {"email": email})
        return str(form.email)

    def validate_password(self, password: Any, confirmation: Any = None) -> str:
        form = self._parse(
            PasswordForm, {"password": password, "password_confirmation": confirmation}
        )
        self._check_strength(form.password)
        return form.password

    def validate_registration(self, params: Mapping[str, Any]) -> dict[str, Any]:
        form = self._parse(RegistrationForm, params)
        self._check_strength(form.password)
        return {
            "email": str(form.email),
            "name": form.name,
            "password_hash": self.hash_password(form.password),
        }

    def validate_profile(self, account: Account, params: Mapping[str, Any]) -> dict[str, Any]:
        """Build the changes for a settings update; password changes need ``current_password``."""
        form = self._parse(ProfileForm, params)
        changes: dict[str, Any] = {}
        if form.email is not None and str(form.email).lower() != account.email.lower():
            changes["email"] = str(form.email)
        if form.name is not None:
            changes["name"] = form.name
        if form.password is not None:
            self._check_strength(form.password)
            if not self.check_password(form.current_password, account.password_hash):
                raise ValidationError(errors={"current_password": "is invalid"})
            changes["password_hash"] = self.hash_password(form.password)
        return changes

    def validate_blocked(self, reason: Any) -> dict[str, Any]:
        form = self._parse(BlockForm, {"reason": reason})
        text = (form.reason or "").strip()
        if text:
            return {"blocked": True, "blocked_reason": text}
        return {"blocked": False, "blocked_reason": None}

    def hash_password(self, plaintext: str) -> str:
        return self._hasher.hash(plaintext)

    def check_password(self, plaintext: str | None, password_hash: str | None) -> bool:
        return self._hasher.verify(plaintext, password_hash)

    def is_locked(self, account: Account) -> bool:
        return account.locked_at is not None

    def is_confirmed(self, account: Account) -> bool:
        return account.confirmed_at is not None

    def render(self, account: Account) -> dict[str, Any]:
        return AccountView.model_validate(account).model_dump(mode="json")

    def _check_strength(self, password: str) -> None:
        if len(password) < self._min_length:
            raise ValidationError(
                errors={"password": f"should be at least {self._min_length} characters"}
            )

    @staticmethod
    def _parse(model: type[BaseModel], params: Mapping[str, Any]) -> Any:
        try:
            return model.model_validate(dict(params))
        except PydanticValidationError as exc:
            raise ValidationError(errors=error_map(exc)) from exc


def load_user_schema(settings: Settings) -> UserSchema:
    """Import and instantiate the schema named by ``settings.user_schema`` (``module:attr``)."""
    module_name, _, attribute = settings.user_schema.partition(":")
    if not attribute:
        raise ValueError(f"user schema must be 'module:attribute', got {settings.user_schema!r}")
    factory = getattr(importlib.import_module(module_name), attribute)
    return factory(settings)
