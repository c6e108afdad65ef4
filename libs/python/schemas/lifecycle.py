"""Lifecycle event contracts published on the feedback channel."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, Field


class LifecycleEventName(str, Enum):
    user_created = "user_created"
    users_updated = "users_updated"


class LifecycleEvent(BaseModel):
    event: LifecycleEventName
    payload: dict
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        use_enum_values = True
