"""Lifecycle engine orchestrating token issuance, redemption and account mutations."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence

from . import messages
from .account import Account
from .contracts import (
    AccountStore,
    CreateAccountInput,
    DispatchError,
    EventBroadcaster,
    InvitationInput,
    NotificationDispatcher,
)
from .errors import (
    AlreadyConfirmed,
    DuplicateConflict,
    InvalidCredentials,
    MessagingUnavailable,
    NotFound,
    NotLocked,
    PersistenceError,
    TokenExpired,
    TokenNotFound,
    ValidationError,
)
from .responses import Reply, replies, success
from .schema import UserSchema
from ..config import Settings
from ..events import NullBroadcaster
from ..security.tokens import ExpiryPolicy, TokenKind, generate_token

logger = logging.getLogger(__name__)

INVITED = "invited"
IGNORED = "ignored"
FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleEngine:
    """Account lifecycle workflows: confirmation, recovery, unlock and invitations.

    Every public operation returns a :class:`Reply`. Token redemption goes through
    ``AccountStore.update_where_token`` so the lookup-and-clear is one conditional
    write; notifications and broadcasts only happen after that write returns.
    """

    def __init__(
        self,
        store: AccountStore,
        schema: UserSchema,
        settings: Settings,
        *,
        dispatcher: NotificationDispatcher | None = None,
        broadcaster: EventBroadcaster | None = None,
        expiry: ExpiryPolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._schema = schema
        self._settings = settings
        self._dispatcher = dispatcher
        self._broadcaster = broadcaster or NullBroadcaster()
        self._expiry = expiry or ExpiryPolicy.from_settings(settings)
        self._clock = clock

    @replies("create_user")
    def create_user(self, params: Mapping[str, Any]) -> Reply:
        """Register an account, announce it and send its first confirmation email."""
        fields = self._schema.validate_registration(params)
        try:
            account = self._store.create_account(CreateAccountInput(**fields))
        except DuplicateConflict as exc:
            raise ValidationError(errors={"email": messages.EMAIL_TAKEN}) from exc
        self._broadcaster.publish("user_created", self._schema.render(account))
        return success(self._send_confirmation(account))

    @replies("request_confirmation")
    def request_confirmation(self, email: Any) -> Reply:
        """Issue a fresh confirmation token, replacing any outstanding one."""
        account = self._account_for_email(email)
        if self._schema.is_confirmed(account):
            raise AlreadyConfirmed(messages.ACCOUNT_ALREADY_CONFIRMED)
        return success(self._send_confirmation(account))

    @replies("confirm")
    def confirm(self, token: str) -> Reply:
        account = self._find_by_token("confirmation_token", token, messages.INVALID_CONFIRMATION_TOKEN)
        now = self._clock()
        # An expired confirmation token stays in place; requesting a new one replaces it.
        if self._expiry.is_expired(TokenKind.confirmation, account.confirmation_sent_at, now):
            raise TokenExpired(messages.CONFIRMATION_TOKEN_EXPIRED)

        try:
            confirmed = self._store.update_where_token(
                "confirmation_token",
                token,
                {"confirmation_token": None, "confirmation_sent_at": None, "confirmed_at": now},
            )
        except PersistenceError as exc:
            raise PersistenceError(messages.PROBLEM_CONFIRMING) from exc
        if confirmed is None:
            raise TokenNotFound(messages.INVALID_CONFIRMATION_TOKEN)

        self._broadcast_updated([confirmed])
        return success(messages.ACCOUNT_CONFIRMED)

    @replies("request_recovery")
    def request_recovery(self, email: Any) -> Reply:
        """Persist a reset token, then ask for the reset email.

        The token is stored before dispatch, so a messaging failure still leaves
        a valid token behind; a retry simply issues a new one.
        """
        account = self._account_for_email(email)
        token = generate_token(self._settings.token_length)
        account = self._store.update_account(
            account.account_id,
            {"reset_password_token": token, "reset_password_sent_at": self._clock()},
        )
        url = self._settings.link(self._settings.password_path, token)
        if not self._send(TokenKind.password_reset, account.email, account.name, url):
            raise MessagingUnavailable(messages.MAILER_REQUIRED)
        return success(messages.RESET_EMAIL_SENT)

    @replies("redeem_recovery")
    def redeem_recovery(
        self, token: str, password: Any, password_confirmation: Any = None
    ) -> Reply:
        account = self._find_by_token("reset_password_token", token, messages.INVALID_RESET_TOKEN)
        cleared = {"reset_password_token": None, "reset_password_sent_at": None}

        if self._expiry.is_expired(TokenKind.password_reset, account.reset_password_sent_at, self._clock()):
            self._store.update_where_token("reset_password_token", token, cleared)
            raise TokenExpired(messages.RESET_TOKEN_EXPIRED)

        # A policy violation leaves the token redeemable for a corrected attempt.
        password = self._schema.validate_password(password, password_confirmation)
        updated = self._store.update_where_token(
            "reset_password_token",
            token,
            {**cleared, "password_hash": self._schema.hash_password(password)},
        )
        if updated is None:
            raise TokenNotFound(messages.INVALID_RESET_TOKEN)

        self._track(updated, "password_reset")
        return success(messages.PASSWORD_UPDATED)

    @replies("request_unlock")
    def request_unlock(self, email: Any, password: Any) -> Reply:
        account = None
        if isinstance(email, str) and email.strip():
            account = self._store.find_account("email", email.strip())
        # Unknown account and wrong password share one answer.
        if account is None or not self._schema.check_password(password, account.password_hash):
            raise InvalidCredentials(messages.INVALID_CREDENTIALS)
        if not self._schema.is_locked(account):
            raise NotLocked(messages.YOUR_ACCOUNT_NOT_LOCKED)

        token = generate_token(self._settings.token_length)
        account = self._store.update_account(
            account.account_id, {"unlock_token": token, "unlock_sent_at": self._clock()}
        )
        url = self._settings.link(self._settings.unlock_path, token)
        if not self._send(TokenKind.unlock, account.email, account.name, url):
            return success(messages.UNLOCK_NOT_SENT)
        return success(messages.UNLOCK_INSTRUCTIONS_SENT)

    @replies("redeem_unlock")
    def redeem_unlock(self, token: str) -> Reply:
        account = self._find_by_token("unlock_token", token, messages.INVALID_UNLOCK_TOKEN)
        cleared = {"unlock_token": None, "unlock_sent_at": None}

        if not self._schema.is_locked(account):
            # The account was unlocked some other way; burn the stale token.
            self._store.update_where_token("unlock_token", token, cleared)
            raise NotLocked(messages.ACCOUNT_NOT_LOCKED)

        updated = self._store.update_where_token(
            "unlock_token", token, {**cleared, "locked_at": None, "failed_attempts": 0}
        )
        if updated is None:
            raise TokenNotFound(messages.INVALID_UNLOCK_TOKEN)

        self._track(updated, "unlock")
        return success(messages.ACCOUNT_UNLOCKED)

    @replies("create_invitations")
    def create_invitations(self, entries: Any) -> Reply:
        """Invite each ``(name, email)`` entry independently and summarise the outcome."""
        if not isinstance(entries, (list, tuple)):
            raise ValidationError(errors={"invitations": messages.INVALID_INVITATIONS})

        counts = {INVITED: 0, IGNORED: 0, FAILED: 0}
        for entry in entries:
            counts[self._invite(entry)] += 1

        parts = [f"{counts[INVITED]}/{len(entries)} users successfully invited."]
        if counts[IGNORED]:
            parts.append(f"{counts[IGNORED]} users ignored (already registered or invited).")
        if counts[FAILED]:
            parts.append(f"{counts[FAILED]} users were not invited because of an unknown error.")
        return success({"flash": " ".join(parts), **counts})

    @replies("update_profile")
    def update_profile(self, account_id: str | None, params: Mapping[str, Any]) -> Reply:
        account = self._store.get_account(account_id) if account_id else None
        if account is None:
            raise NotFound(messages.INVALID_REQUEST)

        changes = self._schema.validate_profile(account, params)
        if changes:
            try:
                account = self._store.update_account(account.account_id, changes)
            except DuplicateConflict as exc:
                raise ValidationError(errors={"email": messages.EMAIL_TAKEN}) from exc
            self._broadcast_updated([account])
            if "password_hash" in changes:
                self._track(account, "password_changed")
        return success(messages.ACCOUNT_UPDATED)

    @replies("block_users")
    def block_users(self, caller_id: str | None, account_ids: Any, reason: Any) -> Reply:
        """Block (non-empty ``reason``) or unblock accounts, never touching the caller's own."""
        if not isinstance(account_ids, (list, tuple)):
            raise ValidationError(errors={"users": "must be a list of user ids"})

        targets = [str(account_id) for account_id in account_ids]
        exclude_me = caller_id is not None and caller_id in targets
        targets = [account_id for account_id in targets if account_id != caller_id]

        changes = self._schema.validate_blocked(reason)
        try:
            updated = self._store.update_accounts(targets, changes) if targets else []
        except PersistenceError as exc:
            raise PersistenceError(messages.UPDATE_FAILED) from exc

        self._broadcast_updated(updated)
        message = f"You have successfully updated {len(updated)} users!"
        if exclude_me:
            message += " No changes were made on your account."
        return success(message)

    def _account_for_email(self, email: Any) -> Account:
        address = self._schema.validate_email(email)
        account = self._store.find_account("email", address)
        if account is None:
            raise NotFound(messages.EMAIL_NOT_FOUND)
        return account

    def _find_by_token(self, field: str, token: str, message: str) -> Account:
        if not isinstance(token, str) or not token:
            raise TokenNotFound(message)
        account = self._store.find_account(field, token)
        if account is None:
            raise TokenNotFound(message)
        return account

    def _send_confirmation(self, account: Account) -> str:
        """Issue and mail a confirmation token; returns the flash describing delivery."""
        token = generate_token(self._settings.token_length)
        account = self._store.update_account(
            account.account_id,
            {"confirmation_token": token, "confirmation_sent_at": self._clock()},
        )
        url = self._settings.link(self._settings.confirmation_path, token)
        if not self._send(TokenKind.confirmation, account.email, account.name, url):
            return messages.CONFIRMATION_NOT_SENT
        return messages.CONFIRMATION_EMAIL_SENT

    def _invite(self, entry: Any) -> str:
        if not isinstance(entry, (list, tuple)) or len(entry) != 2:
            return FAILED
        invite = InvitationInput(name=entry[0], email=entry[1])
        if not isinstance(invite.name, str) or not invite.name.strip():
            return FAILED
        try:
            email = self._schema.validate_email(invite.email)
        except ValidationError:
            return FAILED

        token = generate_token(self._settings.token_length)
        try:
            if self._store.find_account("email", email) or self._store.find_invitation("email", email):
                return IGNORED
            try:
                invitation = self._store.create_invitation(
                    name=invite.name.strip(), email=email, token=token
                )
            except DuplicateConflict:
                # Lost a race against a concurrent invitation for the same address.
                return IGNORED if self._store.find_invitation("email", email) else FAILED
        except PersistenceError as exc:
            logger.warning("invitation for %s not created: %s", email, exc)
            return FAILED

        url = self._settings.link(self._settings.invitation_path, token)
        self._send(TokenKind.invitation, invitation.email, invitation.name, url)
        return INVITED

    def _send(self, kind: TokenKind, email: str, name: str | None, url: str) -> bool:
        """Hand a notification to the dispatcher; ``False`` when it could not be sent."""
        if not self._settings.mailer_enabled or self._dispatcher is None:
            logger.warning("mailer disabled; %s notification to %s not sent", kind.value, email)
            return False
        try:
            self._dispatcher.send(kind.value, email, url, name=name)
        except DispatchError as exc:
            logger.warning("%s notification to %s failed: %s", kind.value, email, exc)
            return False
        return True

    def _broadcast_updated(self, accounts: Sequence[Account]) -> None:
        self._broadcaster.publish(
            "users_updated", {"users": [self._schema.render(account) for account in accounts]}
        )

    def _track(self, account: Account, event_type: str) -> None:
        if not self._settings.trackable_enabled:
            return
        try:
            self._store.write_audit_event(
                account_id=account.account_id,
                event_type=event_type,
                actor=account.account_id,
                metadata={"email": account.email},
            )
        except PersistenceError as exc:
            # The state change is already committed.
            logger.error("audit event %s for %s not recorded: %s", event_type, account.account_id, exc)
