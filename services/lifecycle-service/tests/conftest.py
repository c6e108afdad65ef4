from __future__ import annotations

import dataclasses
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from account_lifecycle.config import Settings
from account_lifecycle.domain.account import Account, Invitation
from account_lifecycle.domain.contracts import CreateAccountInput, DispatchError
from account_lifecycle.domain.errors import DuplicateConflict, PersistenceError
from account_lifecycle.domain.schema import DefaultUserSchema
from account_lifecycle.domain.service import LifecycleEngine
from account_lifecycle.security.passwords import PasswordHasher

PASSWORD = "correct horse battery"


class FakeRepository:
    """In-memory store mimicking the Postgres repository's conditional writes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._accounts: dict[str, Account] = {}
        self._invitations: dict[str, Invitation] = {}
        self.audit_log: list[dict[str, Any]] = []
        self.fail_writes = False
        self.fail_invitations: type[Exception] | None = None
        self.token_lookup_barrier: threading.Barrier | None = None

    def add(self, account: Account) -> Account:
        self._accounts[account.account_id] = account
        return dataclasses.replace(account)

    def get_account(self, account_id: str) -> Account | None:
        return self.find_account("account_id", account_id)

    def find_account(self, field: str, value: str) -> Account | None:
        with self._lock:
            found = None
            for account in self._accounts.values():
                current = getattr(account, field)
                if current is None:
                    continue
                if field == "email" and current.lower() == value.lower():
                    found = dataclasses.replace(account)
                elif current == value:
                    found = dataclasses.replace(account)
        if found is not None and field.endswith("_token") and self.token_lookup_barrier:
            self.token_lookup_barrier.wait(timeout=5)
        return found

    def create_account(self, payload: CreateAccountInput) -> Account:
        with self._lock:
            if any(a.email.lower() == payload.email.lower() for a in self._accounts.values()):
                raise DuplicateConflict("duplicate")
            account = Account(
                account_id=str(uuid.uuid4()),
                email=payload.email,
                name=payload.name,
                password_hash=payload.password_hash,
                created_at=datetime.now(timezone.utc),
            )
            self._accounts[account.account_id] = account
            return dataclasses.replace(account)

    def update_account(self, account_id: str, changes: dict[str, Any]) -> Account:
        with self._lock:
            self._check_writable()
            email = changes.get("email")
            if email and any(
                a.email.lower() == email.lower() and a.account_id != account_id
                for a in self._accounts.values()
            ):
                raise DuplicateConflict("duplicate")
            account = dataclasses.replace(self._accounts[account_id], **changes)
            self._accounts[account_id] = account
            return dataclasses.replace(account)

    def update_where_token(self, field: str, token: str, changes: dict[str, Any]) -> Account | None:
        with self._lock:
            self._check_writable()
            for account_id, account in self._accounts.items():
                if getattr(account, field) == token:
                    updated = dataclasses.replace(account, **changes)
                    self._accounts[account_id] = updated
                    return dataclasses.replace(updated)
            return None

    def update_accounts(self, account_ids, changes: dict[str, Any]) -> list[Account]:
        with self._lock:
            self._check_writable()
            updated = []
            for account_id in dict.fromkeys(account_ids):
                if account_id in self._accounts:
                    account = dataclasses.replace(self._accounts[account_id], **changes)
                    self._accounts[account_id] = account
                    updated.append(dataclasses.replace(account))
            return updated

    def find_invitation(self, field: str, value: str) -> Invitation | None:
        with self._lock:
            for invitation in self._invitations.values():
                current = getattr(invitation, field)
                if field == "email" and current.lower() == value.lower():
                    return invitation
                if current == value:
                    return invitation
            return None

    def create_invitation(self, *, name: str, email: str, token: str) -> Invitation:
        with self._lock:
            if self.fail_invitations is not None:
                raise self.fail_invitations("store rejected invitation")
            if any(i.email.lower() == email.lower() for i in self._invitations.values()):
                raise DuplicateConflict("duplicate")
            invitation = Invitation(
                invitation_id=str(uuid.uuid4()),
                name=name,
                email=email,
                token=token,
                created_at=datetime.now(timezone.utc),
            )
            self._invitations[invitation.invitation_id] = invitation
            return invitation

    def write_audit_event(self, *, account_id, event_type, actor, metadata=None) -> None:
        self.audit_log.append(
            {"account_id": account_id, "event_type": event_type, "actor": actor, "metadata": metadata}
        )

    def stored(self, account_id: str) -> Account:
        return self._accounts[account_id]

    def _check_writable(self) -> None:
        if self.fail_writes:
            raise PersistenceError("The request could not be completed. Please try again later.")


class RecordingDispatcher:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = False

    def send(self, kind: str, recipient: str, url: str, *, name: str | None = None) -> None:
        if self.fail:
            raise DispatchError("relay down")
        self.sent.append({"kind": kind, "recipient": recipient, "url": url, "name": name})


class RecordingBroadcaster:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def publish(self, event: str, payload) -> None:
        self.events.append((event, dict(payload)))

    def named(self, event: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]


class FrozenClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def settings() -> Settings:
    return Settings(
        base_url="https://accounts.example.com",
        mailer_enabled=True,
        trackable_enabled=True,
        confirmation_token_expire_days=5,
        reset_token_expire_days=2,
        password_min_length=8,
        argon2_time_cost=1,
        argon2_memory_cost=1024,
        argon2_parallelism=1,
    )


@pytest.fixture
def schema(settings: Settings) -> DefaultUserSchema:
    return DefaultUserSchema(settings, PasswordHasher.from_settings(settings))


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def engine(settings, schema, repository, dispatcher, broadcaster, clock) -> LifecycleEngine:
    return LifecycleEngine(
        repository,
        schema,
        settings,
        dispatcher=dispatcher,
        broadcaster=broadcaster,
        clock=clock,
    )


@pytest.fixture
def make_account(repository: FakeRepository, schema: DefaultUserSchema, clock: FrozenClock):
    """Insert an account straight into the fake store."""
    password_hash = schema.hash_password(PASSWORD)

    def factory(**overrides: Any) -> Account:
        fields: dict[str, Any] = {
            "account_id": str(uuid.uuid4()),
            "email": f"{uuid.uuid4().hex[:8]}@example.com",
            "name": "Ada",
            "password_hash": password_hash,
            "created_at": clock.now,
        }
        fields.update(overrides)
        return repository.add(Account(**fields))

    return factory
