"""Argon2 password hashing used by the default user schema."""

from __future__ import annotations

from argon2 import PasswordHasher as _Argon2Hasher
from argon2.exceptions import InvalidHashError, VerificationError

from ..config import Settings


class PasswordHasher:
    """Thin wrapper exposing ``hash``/``verify`` with boolean verification."""

    def __init__(self, *, time_cost: int = 3, memory_cost: int = 65536, parallelism: int = 1) -> None:
        self._hasher = _Argon2Hasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordHasher":
        return cls(
            time_cost=settings.argon2_time_cost,
            memory_cost=settings.argon2_memory_cost,
            parallelism=settings.argon2_parallelism,
        )

    def hash(self, plaintext: str) -> str:
        return self._hasher.hash(plaintext)

    def verify(self, plaintext: str | None, password_hash: str | None) -> bool:
        """Return ``True`` only when ``plaintext`` matches ``password_hash``."""
        if not plaintext or not password_hash:
            return False
        try:
            return self._hasher.verify(password_hash, plaintext)
        except (VerificationError, InvalidHashError):
            return False
