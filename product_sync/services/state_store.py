"""
Cross-invocation state backed by Redis.

Every invocation of the batch loop may run in a different process, so the
lock record, queue, cursor and status snapshot all live here rather than in
memory.
"""
import logging
from typing import Optional, Protocol

import redis

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    """TTL-capable key/value store with atomic check-and-set."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl: int) -> None:
        ...

    def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        ...

    def compare_and_swap(self, key: str, expected: str, value: str, ttl: int) -> bool:
        ...

    def compare_and_delete(self, key: str, expected: str) -> bool:
        ...

    def delete(self, key: str) -> None:
        ...


class RedisStateStore:
    """StateStore implementation using redis-py."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStateStore":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> Optional[str]:
        value = self.client.get(key)
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl: int) -> None:
        self.client.set(key, value, ex=max(1, int(ttl)))

    def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        """Atomic SET NX EX; True when the key was written."""
        return bool(self.client.set(key, value, ex=max(1, int(ttl)), nx=True))

    def _transaction(self, key: str, expected: str, apply) -> bool:
        with self.client.pipeline() as pipe:
            try:
                pipe.watch(key)
                current = pipe.get(key)
                if isinstance(current, bytes):
                    current = current.decode("utf-8")
                if current != expected:
                    pipe.unwatch()
                    return False
                pipe.multi()
                apply(pipe)
                pipe.execute()
                return True
            except redis.WatchError:
                logger.debug(f"Concurrent write on {key}, compare-and-set lost")
                return False

    def compare_and_swap(self, key: str, expected: str, value: str, ttl: int) -> bool:
        """Replace the value only if it still equals ``expected``."""
        return self._transaction(
            key, expected, lambda pipe: pipe.set(key, value, ex=max(1, int(ttl)))
        )

    def compare_and_delete(self, key: str, expected: str) -> bool:
        """Delete the key only if it still equals ``expected``."""
        return self._transaction(key, expected, lambda pipe: pipe.delete(key))

    def delete(self, key: str) -> None:
        self.client.delete(key)
