"""Opaque token generation and expiry rules for lifecycle workflows."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Mapping

from ..config import Settings


class TokenKind(str, Enum):
    confirmation = "confirmation"
    password_reset = "password_reset"
    unlock = "unlock"
    invitation = "invitation"


def generate_token(length: int = 48) -> str:
    """Return a URL-safe random token of exactly ``length`` characters.

    Parameters
    ----------
    length:
        Number of characters in the token. The same number of random bytes is
        drawn before encoding, so the encoded form is always long enough to trim.
    """
    if length <= 0:
        raise ValueError("token length must be positive")
    return secrets.token_urlsafe(length)[:length]


def is_expired(issued_at: datetime, max_age: timedelta, now: datetime) -> bool:
    """Return ``True`` when more than ``max_age`` has elapsed since ``issued_at``."""
    return _as_utc(now) - _as_utc(issued_at) > max_age


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class ExpiryPolicy:
    """Per-workflow token lifetimes."""

    max_ages: Mapping[TokenKind, timedelta] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExpiryPolicy":
        return cls(
            max_ages={
                TokenKind.confirmation: timedelta(days=settings.confirmation_token_expire_days),
                TokenKind.password_reset: timedelta(days=settings.reset_token_expire_days),
            }
        )

    def is_expired(self, kind: TokenKind, issued_at: datetime | None, now: datetime) -> bool:
        """Apply the window configured for ``kind``; kinds without a window never expire.

        A missing ``issued_at`` cannot be aged and is reported as expired.
        """
        max_age = self.max_ages.get(kind)
        if max_age is None:
            return False
        if issued_at is None:
            return True
        return is_expired(issued_at, max_age, now)
