"""Account DTOs shared with subscribers of lifecycle events."""

from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, ConfigDict


class AccountView(BaseModel):
    """Public projection of an account; never carries tokens or credentials."""

    model_config = ConfigDict(from_attributes=True)

    account_id: str
    email: str
    name: str | None = None
    confirmed_at: datetime | None = None
    locked_at: datetime | None = None
    blocked: bool = False
    blocked_reason: str | None = None
    created_at: datetime
