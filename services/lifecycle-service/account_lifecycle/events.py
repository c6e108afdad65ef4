"""Post-commit lifecycle event broadcasting."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from redis import Redis
from redis.exceptions import RedisError

from schemas import LifecycleEvent

logger = logging.getLogger(__name__)


class NullBroadcaster:
    """Broadcaster used when no feedback channel is configured."""

    def publish(self, event: str, payload: Mapping[str, Any]) -> None:
        logger.debug("no broadcaster configured; dropping %s event", event)


class RedisBroadcaster:
    """Publishes lifecycle events to subscribers of a Redis pub/sub channel."""

    def __init__(self, client: Redis, *, channel: str) -> None:
        self._client = client
        self._channel = channel

    def publish(self, event: str, payload: Mapping[str, Any]) -> None:
        """Publish ``event`` without letting transport failures reach the caller."""
        message = LifecycleEvent(event=event, payload=dict(payload))
        try:
            receivers = self._client.publish(self._channel, json.dumps(message.model_dump(mode="json")))
        except RedisError as exc:
            logger.warning("failed to broadcast %s on %s: %s", event, self._channel, exc)
            return
        logger.debug("broadcast %s to %s subscribers", event, receivers)
