"""
Distributed run lock.

Only one batch run may be active at a time. The lock lives in the state
store as a JSON record ``{owner, acquired_at, ttl}`` so that separate
processes (cron worker, API worker) see the same lock. A lock older than
the staleness threshold is treated as abandoned and reclaimed.
"""
import json
import logging
import time
import uuid
from typing import Callable, Optional

from product_sync.constants.sync import StateKeys
from product_sync.services.state_store import StateStore

logger = logging.getLogger(__name__)


class LockManager:
    """
    Acquire, refresh and release the run lock.

    Args:
        store: state store holding the lock record
        staleness_seconds: age after which an unreleased lock is reclaimed
        key: state key of the lock record
        owner: identifier of this holder (random by default)
        clock: returns the current unix time
    """

    def __init__(
        self,
        store: StateStore,
        staleness_seconds: int,
        key: str = StateKeys.LOCK,
        owner: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.staleness_seconds = staleness_seconds
        self.key = key
        self.owner = owner or uuid.uuid4().hex
        self.clock = clock

    def _record(self, ttl: int) -> str:
        return json.dumps({"owner": self.owner, "acquired_at": self.clock(), "ttl": int(ttl)})

    def _read(self):
        raw = self.store.get(self.key)
        if not raw:
            return None, None
        try:
            return raw, json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Corrupt lock record on {self.key}, treating as stale")
            return raw, {}

    def _is_stale(self, record: dict) -> bool:
        acquired_at = record.get("acquired_at")
        if acquired_at is None:
            return True
        return self.clock() - float(acquired_at) > self.staleness_seconds

    def try_acquire(self, ttl: int) -> bool:
        """
        Take the lock if it is free or stale.

        Returns:
            bool: True when this manager now holds the lock
        """
        if self.store.set_if_absent(self.key, self._record(ttl), ttl):
            logger.debug(f"Lock {self.key} acquired by {self.owner}")
            return True

        raw, record = self._read()
        if raw is None:
            # Expired between the two calls
            return self.store.set_if_absent(self.key, self._record(ttl), ttl)

        if record.get("owner") == self.owner:
            return self.refresh(ttl)

        if not self._is_stale(record):
            return False

        if self.store.compare_and_swap(self.key, raw, self._record(ttl), ttl):
            age = self.clock() - float(record.get("acquired_at") or 0)
            logger.warning(
                f"Recovered stale lock {self.key} held by {record.get('owner')} for {age:.0f}s"
            )
            return True
        return False

    def refresh(self, ttl: int) -> bool:
        """Extend the lock if we still own it."""
        raw, record = self._read()
        if raw is None or record.get("owner") != self.owner:
            return False
        return self.store.compare_and_swap(self.key, raw, self._record(ttl), ttl)

    def release(self) -> bool:
        """Release the lock if we own it. Never touches someone else's lock."""
        raw, record = self._read()
        if raw is None or record.get("owner") != self.owner:
            return False
        released = self.store.compare_and_delete(self.key, raw)
        if released:
            logger.debug(f"Lock {self.key} released by {self.owner}")
        return released

    def force_release(self) -> None:
        self.store.delete(self.key)
        logger.info(f"Lock {self.key} force released")

    def is_held(self) -> bool:
        """True if someone holds a lock that is not stale."""
        raw, record = self._read()
        if raw is None:
            return False
        return not self._is_stale(record)
