"""Shared schema exports."""

from .account import AccountView
from .lifecycle import LifecycleEvent, LifecycleEventName

__all__ = [
    "AccountView",
    "LifecycleEvent",
    "LifecycleEventName",
]
