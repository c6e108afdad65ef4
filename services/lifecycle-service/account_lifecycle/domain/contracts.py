"""Domain-level contracts for the collaborators the lifecycle engine consumes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol

from .account import Account, Invitation


@dataclass(slots=True)
class CreateAccountInput:
    """Validated inputs required to register an account."""

    email: str
    name: str | None
    password_hash: str


@dataclass(slots=True)
class InvitationInput:
    """One ``(name, email)`` entry of an invitation batch."""

    name: str
    email: str


class DispatchError(Exception):
    """Raised by a notification dispatcher when a message could not be handed off."""


class AccountStore(Protocol):
    """Persistence operations for accounts and invitations.

    ``update_where_token`` must execute as a single conditional write: the row
    is matched on the token's current value and the token is cleared in the
    same statement, so only one of several concurrent callers gets a row back.
    Store failures surface as ``PersistenceError``; uniqueness violations as
    ``DuplicateConflict``.
    """

    def get_account(self, account_id: str) -> Account | None: ...

    def find_account(self, field: str, value: str) -> Account | None: ...

    def create_account(self, payload: CreateAccountInput) -> Account: ...

    def update_account(self, account_id: str, changes: Mapping[str, Any]) -> Account: ...

    def update_where_token(
        self, field: str, token: str, changes: Mapping[str, Any]
    ) -> Account | None: ...

    def update_accounts(
        self, account_ids: Iterable[str], changes: Mapping[str, Any]
    ) -> list[Account]: ...

    def find_invitation(self, field: str, value: str) -> Invitation | None: ...

    def create_invitation(self, *, name: str, email: str, token: str) -> Invitation: ...

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        actor: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...


class NotificationDispatcher(Protocol):
    def send(self, kind: str, recipient: str, url: str, *, name: str | None = None) -> None: ...


class EventBroadcaster(Protocol):
    def publish(self, event: str, payload: Mapping[str, Any]) -> None: ...
