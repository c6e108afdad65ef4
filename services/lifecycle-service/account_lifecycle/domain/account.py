from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class Account:
    """Aggregate root for a user account and its lifecycle tokens."""

    account_id: str
    email: str
    created_at: datetime
    name: str | None = None
    password_hash: str | None = None
    confirmation_token: str | None = None
    confirmation_sent_at: datetime | None = None
    confirmed_at: datetime | None = None
    reset_password_token: str | None = None
    reset_password_sent_at: datetime | None = None
    unlock_token: str | None = None
    unlock_sent_at: datetime | None = None
    locked_at: datetime | None = None
    failed_attempts: int = 0
    blocked: bool = False
    blocked_reason: str | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class Invitation:
    """Pending invitation for someone who does not have an account yet."""

    invitation_id: str
    name: str
    email: str
    token: str
    created_at: datetime


# Columns holding single-use tokens; conditional writes are keyed on these.
TOKEN_FIELDS = frozenset({"confirmation_token", "reset_password_token", "unlock_token"})

# Columns an account may be looked up by.
LOOKUP_FIELDS = TOKEN_FIELDS | {"account_id", "email"}

MUTABLE_FIELDS = frozenset(
    {
        "email",
        "name",
        "password_hash",
        "confirmation_token",
        "confirmation_sent_at",
        "confirmed_at",
        "reset_password_token",
        "reset_password_sent_at",
        "unlock_token",
        "unlock_sent_at",
        "locked_at",
        "failed_attempts",
        "blocked",
        "blocked_reason",
    }
)
