"""Uniform success/error envelope returned by every lifecycle operation."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, TypeVar

from prometheus_client import Counter
from pydantic import ValidationError as PydanticValidationError

from .errors import LifecycleError

logger = logging.getLogger(__name__)

OPERATIONS = Counter(
    "account_lifecycle_operations_total",
    "Lifecycle operations by outcome.",
    ["operation", "outcome"],
)

F = TypeVar("F", bound=Callable[..., "Reply"])


@dataclass(frozen=True, slots=True)
class Reply:
    """Result envelope; ``kind`` names the failure and never reaches the wire body."""

    ok: bool
    data: dict[str, Any] = field(default_factory=dict)
    kind: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "data": self.data}


def success(data: str | Mapping[str, Any]) -> Reply:
    return Reply(ok=True, data=_wrap(data))


def failure(data: str | Mapping[str, Any], kind: str) -> Reply:
    return Reply(ok=False, data=_wrap(data), kind=kind)


def from_error(exc: LifecycleError) -> Reply:
    """Render a taxonomy error as a field map when it has one, else as its message."""
    if exc.errors:
        return failure({"errors": dict(exc.errors)}, exc.code)
    return failure(exc.message, exc.code)


def error_map(exc: PydanticValidationError) -> dict[str, str]:
    """Map each invalid field to its first failure reason."""
    errors: dict[str, str] = {}
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ())) or "base"
        errors.setdefault(loc, error.get("msg", "is invalid"))
    return errors


def replies(operation: str) -> Callable[[F], F]:
    """Translate ``LifecycleError`` raised by ``operation`` into a failure ``Reply``."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Reply:
            try:
                reply = func(*args, **kwargs)
            except LifecycleError as exc:
                logger.info("%s rejected: %s", operation, exc.code)
                reply = from_error(exc)
            OPERATIONS.labels(operation=operation, outcome="ok" if reply.ok else reply.kind).inc()
            return reply

        return wrapper  # type: ignore[return-value]

    return decorator


def _wrap(data: str | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(data, str):
        return {"flash": data}
    return dict(data)
