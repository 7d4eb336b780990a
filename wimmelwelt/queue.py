"""
Notification queue between the API and the mail worker.

The API pushes the id of every stored message. The worker pops ids one at a time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


class NotificationQueue(Protocol):
    """Minimal queue interface for handing message ids to the worker."""

    def enqueue(self, message_id: str) -> None:
        ...

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        ...


@dataclass
class InMemoryNotificationQueue:
    """FIFO list used by tests and single-process development runs."""

    items: list[str] = field(default_factory=list)

    def enqueue(self, message_id: str) -> None:
        self.items.append(message_id)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        if not self.items:
            return None
        return self.items.pop(0)


@dataclass
class RedisNotificationQueue:
    """Redis list: RPUSH on send, BLPOP (or LPOP when not blocking) in the worker."""

    url: str
    queue_key: str = "wimmelwelt:notifications"
    connect_timeout: float = 5.0

    def __post_init__(self):
        self.client = self._connect()

    def _connect(self) -> redis.Redis:
        return redis.Redis.from_url(self.url, socket_connect_timeout=self.connect_timeout)

    def enqueue(self, message_id: str) -> None:
        self.client.rpush(self.queue_key, message_id)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        try:
            if block:
                result = self.client.blpop(self.queue_key, timeout=timeout or 0)
                if result is None:
                    return None
                _, message_id = result
            else:
                message_id = self.client.lpop(self.queue_key)
                if message_id is None:
                    return None
            return message_id.decode("utf-8")
        except redis_exceptions.ConnectionError:
            logger.warning("Lost connection to %s, reconnecting", self.queue_key)
            self.client = self._connect()
            return None
