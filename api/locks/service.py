"""
Advisory edit locks.

Collaborating clients announce "I am editing task 7" here so other clients
can warn their users. Nothing in the mediation layer consults this registry;
it provides no mutual exclusion for writes.

Locks expire after a TTL and are released by the opaque token handed out on
acquisition. Expired entries are evicted lazily on every call.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from core import errors, settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Lock:
    entity: str
    item_id: str
    owner: str
    token: str
    expires_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "item_id": self.item_id,
            "owner": self.owner,
            "token": self.token,
            "expires_at": self.expires_at,
        }


class LockRegistry:
    def __init__(self, ttl_seconds: float | None = None, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.lock_ttl_seconds()
        self._clock = clock
        self._by_key: dict[tuple[str, str], Lock] = {}
        self._by_token: dict[str, tuple[str, str]] = {}
        self._mutex = threading.Lock()

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [key for key, lock in self._by_key.items() if lock.expires_at <= now]
        for key in expired:
            lock = self._by_key.pop(key)
            self._by_token.pop(lock.token, None)
            logger.info("lock_expired entity=%s id=%s owner=%s", lock.entity, lock.item_id, lock.owner)

    def acquire(self, entity: str, item_id: Any, owner: str) -> Lock:
        """
        Take (or refresh, for the same owner) the lock on one item.
        """
        key = (entity, str(item_id))
        with self._mutex:
            self._evict_expired()
            current = self._by_key.get(key)
            if current is not None and current.owner != owner:
                raise errors.lock_held_error(entity, item_id)

            token = current.token if current is not None else secrets.token_urlsafe(24)
            lock = Lock(
                entity=entity,
                item_id=key[1],
                owner=owner,
                token=token,
                expires_at=self._clock() + self.ttl_seconds,
            )
            self._by_key[key] = lock
            self._by_token[token] = key
        logger.info("locked entity=%s id=%s owner=%s", entity, key[1], owner)
        return lock

    def release(self, token: str) -> Lock:
        with self._mutex:
            self._evict_expired()
            key = self._by_token.pop(token, None)
            if key is None:
                raise errors.lock_not_found_error(token)
            lock = self._by_key.pop(key)
        logger.info("unlocked entity=%s id=%s owner=%s", lock.entity, lock.item_id, lock.owner)
        return lock

    def release_owner(self, owner: str) -> int:
        with self._mutex:
            self._evict_expired()
            owned = [key for key, lock in self._by_key.items() if lock.owner == owner]
            for key in owned:
                lock = self._by_key.pop(key)
                self._by_token.pop(lock.token, None)
        return len(owned)

    def get(self, entity: str, item_id: Any) -> Lock | None:
        with self._mutex:
            self._evict_expired()
            return self._by_key.get((entity, str(item_id)))

    def is_locked(self, entity: str, item_id: Any) -> bool:
        return self.get(entity, item_id) is not None


_registry: LockRegistry | None = None


def registry() -> LockRegistry:
    global _registry
    if _registry is None:
        _registry = LockRegistry()
    return _registry
