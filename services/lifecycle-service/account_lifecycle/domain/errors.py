"""Failure taxonomy shared by the engine, the store and the HTTP adapter."""

from __future__ import annotations

from typing import Mapping


class LifecycleError(Exception):
    """Base error carrying a user-facing message and optional field errors."""

    code = "lifecycle_error"

    def __init__(self, message: str = "", *, errors: Mapping[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = dict(errors or {})


class ValidationError(LifecycleError):
    code = "validation_error"


class NotFound(LifecycleError):
    code = "not_found"


class TokenNotFound(NotFound):
    code = "token_not_found"


class TokenExpired(LifecycleError):
    code = "token_expired"


class AlreadyConfirmed(LifecycleError):
    code = "already_confirmed"


class NotLocked(LifecycleError):
    code = "not_locked"


class InvalidCredentials(LifecycleError):
    code = "invalid_credentials"


class MessagingUnavailable(LifecycleError):
    code = "messaging_unavailable"


class PersistenceError(LifecycleError):
    code = "persistence_error"


class DuplicateConflict(LifecycleError):
    code = "duplicate_conflict"
