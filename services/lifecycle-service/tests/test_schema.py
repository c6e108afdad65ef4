from __future__ import annotations

import dataclasses
from datetime import datetime, timezone

import pytest

from account_lifecycle.domain.account import Account
from account_lifecycle.domain.errors import ValidationError
from account_lifecycle.domain.schema import DefaultUserSchema, load_user_schema


def _account(**overrides) -> Account:
    fields = {
        "account_id": "acc-1",
        "email": "ada@example.com",
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "confirmation_token": "secret-token",
        "password_hash": "hash",
    }
    fields.update(overrides)
    return Account(**fields)


def test_load_user_schema_imports_configured_class(settings):
    assert isinstance(load_user_schema(settings), DefaultUserSchema)


def test_load_user_schema_requires_module_and_attribute(settings):
    with pytest.raises(ValueError):
        load_user_schema(dataclasses.replace(settings, user_schema="account_lifecycle.domain.schema"))


def test_validate_email_returns_field_map(schema):
    with pytest.raises(ValidationError) as info:
        schema.validate_email("missing-at-sign")

    assert list(info.value.errors) == ["email"]


def test_password_hash_round_trip(schema):
    password_hash = schema.hash_password("long enough pw")

    assert schema.check_password("long enough pw", password_hash)
    assert not schema.check_password("wrong", password_hash)
    assert not schema.check_password(None, password_hash)
    assert not schema.check_password("long enough pw", "not-a-hash")


def test_predicates(schema):
    now = datetime.now(timezone.utc)

    assert schema.is_locked(_account(locked_at=now))
    assert not schema.is_locked(_account())
    assert schema.is_confirmed(_account(confirmed_at=now))
    assert not schema.is_confirmed(_account())


def test_render_omits_tokens_and_credentials(schema):
    rendered = schema.render(_account())

    assert rendered["account_id"] == "acc-1"
    assert "confirmation_token" not in rendered
    assert "password_hash" not in rendered


def test_render_keeps_stored_email_verbatim(schema):
    assert schema.render(_account(email="ops@intranet"))["email"] == "ops@intranet"


def test_validate_blocked_toggles_on_reason(schema):
    assert schema.validate_blocked("  abuse ") == {"blocked": True, "blocked_reason": "abuse"}
    assert schema.validate_blocked(None) == {"blocked": False, "blocked_reason": None}
    with pytest.raises(ValidationError):
        schema.validate_blocked("x" * 300)


def test_validate_profile_ignores_unchanged_email(schema):
    account = _account()

    assert schema.validate_profile(account, {"email": "ADA@example.com"}) == {}
