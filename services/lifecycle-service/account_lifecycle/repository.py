"""Database repository for account lifecycle data."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Mapping

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.account import LOOKUP_FIELDS, MUTABLE_FIELDS, TOKEN_FIELDS, Account, Invitation
from .domain.contracts import CreateAccountInput
from .domain.errors import DuplicateConflict, PersistenceError

ACCOUNT_COLUMNS = (
    "account_id",
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
    "created_at",
    "updated_at",
)

INVITATION_COLUMNS = ("invitation_id", "name", "email", "token", "created_at")

_UNAVAILABLE = "The request could not be completed. Please try again later."


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Re-raise psycopg failures as domain errors."""
    try:
        yield
    except psycopg.errors.UniqueViolation as exc:
        raise DuplicateConflict(_UNAVAILABLE) from exc
    except psycopg.Error as exc:
        raise PersistenceError(_UNAVAILABLE) from exc


def _columns(names: Iterable[str]) -> sql.Composable:
    return sql.SQL(", ").join(sql.Identifier(name) for name in names)


class AccountRepository:
    """Postgres-backed account and invitation persistence."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def get_account(self, account_id: str) -> Account | None:
        return self.find_account("account_id", account_id)

    def find_account(self, field: str, value: str) -> Account | None:
        """Return the account whose ``field`` equals ``value``; emails match case-insensitively."""
        if field not in LOOKUP_FIELDS:
            raise ValueError(f"cannot look up accounts by {field!r}")
        if field == "email":
            condition = sql.SQL("lower(email) = lower(%s)")
        else:
            condition = sql.SQL("{} = %s").format(sql.Identifier(field))
        query = sql.SQL("SELECT {} FROM accounts WHERE {}").format(
            _columns(ACCOUNT_COLUMNS), condition
        )
        return self._fetch_account(query, (value,))

    def create_account(self, payload: CreateAccountInput) -> Account:
        now = datetime.now(timezone.utc)
        query = sql.SQL(
            """
            INSERT INTO accounts (account_id, email, name, password_hash, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {}
            """
        ).format(_columns(ACCOUNT_COLUMNS))
        account = self._fetch_account(
            query,
            (str(uuid.uuid4()), payload.email, payload.name, payload.password_hash, now, now),
        )
        if account is None:
            raise PersistenceError(_UNAVAILABLE)
        return account

    def update_account(self, account_id: str, changes: Mapping[str, Any]) -> Account:
        query = sql.SQL("UPDATE accounts SET {} WHERE account_id = %s RETURNING {}").format(
            self._assignments(changes), _columns(ACCOUNT_COLUMNS)
        )
        account = self._fetch_account(query, (*changes.values(), account_id))
        if account is None:
            raise PersistenceError(_UNAVAILABLE)
        return account

    def update_where_token(
        self, field: str, token: str, changes: Mapping[str, Any]
    ) -> Account | None:
        """Apply ``changes`` to the row still holding ``token``, in a single statement.

        Returns ``None`` when no row holds the token anymore, which is what a
        losing concurrent redemption observes.
        """
        if field not in TOKEN_FIELDS:
            raise ValueError(f"{field!r} is not a token column")
        query = sql.SQL("UPDATE accounts SET {} WHERE {} = %s RETURNING {}").format(
            self._assignments(changes), sql.Identifier(field), _columns(ACCOUNT_COLUMNS)
        )
        return self._fetch_account(query, (*changes.values(), token))

    def update_accounts(
        self, account_ids: Iterable[str], changes: Mapping[str, Any]
    ) -> list[Account]:
        ids = list(account_ids)
        if not ids:
            return []
        query = sql.SQL("UPDATE accounts SET {} WHERE account_id = ANY(%s) RETURNING {}").format(
            self._assignments(changes), _columns(ACCOUNT_COLUMNS)
        )
        with _translate_errors(), self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, (*changes.values(), ids))
                rows = cur.fetchall()
            conn.commit()
        return [Account(**row) for row in rows]

    def find_invitation(self, field: str, value: str) -> Invitation | None:
        if field not in {"email", "token"}:
            raise ValueError(f"cannot look up invitations by {field!r}")
        if field == "email":
            condition = sql.SQL("lower(email) = lower(%s)")
        else:
            condition = sql.SQL("token = %s")
        query = sql.SQL("SELECT {} FROM invitations WHERE {}").format(
            _columns(INVITATION_COLUMNS), condition
        )
        with _translate_errors(), self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, (value,))
                row = cur.fetchone()
        return Invitation(**row) if row else None

    def create_invitation(self, *, name: str, email: str, token: str) -> Invitation:
        """Insert an invitation; the unique index on email raises ``DuplicateConflict``."""
        query = sql.SQL(
            """
            INSERT INTO invitations (invitation_id, name, email, token, created_at)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {}
            """
        ).format(_columns(INVITATION_COLUMNS))
        with _translate_errors(), self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    query, (str(uuid.uuid4()), name, email, token, datetime.now(timezone.utc))
                )
                row = cur.fetchone()
            conn.commit()
        return Invitation(**row)

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        actor: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Record a trackable event for a security-relevant state change."""
        with _translate_errors(), self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO account_audit_log (account_id, event_type, actor, metadata)
                    VALUES (%s, %s, %s, %s)
                    """,
                    (account_id, event_type, actor, Json(metadata or {})),
                )
            conn.commit()

    def _fetch_account(self, query: sql.Composable, params: tuple) -> Account | None:
        with _translate_errors(), self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
            conn.commit()
        return Account(**row) if row else None

    def _assignments(self, changes: Mapping[str, Any]) -> sql.Composable:
        unknown = set(changes) - MUTABLE_FIELDS
        if unknown or not changes:
            raise ValueError(f"invalid account changes: {sorted(unknown) or 'empty'}")
        assignments = [sql.SQL("{} = %s").format(sql.Identifier(name)) for name in changes]
        assignments.append(sql.SQL("updated_at = now()"))
        return sql.SQL(", ").join(assignments)
