# price_engine/storage/cache_store.py

"""Key -> JSON cache stores with per-key TTL and prefix deletion."""

import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from price_engine.errors import CacheUnavailableError

logger = logging.getLogger("price_engine.cache")


class CacheStore(ABC):
    """Minimal Redis-like contract the price cache depends on.

    Implementations raise :class:`CacheUnavailableError` when the
    backing store cannot be reached.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the decoded JSON value, or ``None`` on miss."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: float) -> None:
        """Store a JSON-serialisable value for *ttl* seconds."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> int:
        """Delete one key; returns how many keys were removed."""
        ...

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with *prefix*."""
        ...

    @abstractmethod
    async def clear(self) -> int:
        """Drop every key."""
        ...


@dataclass
class _StoredValue:
    """A serialised value and its absolute expiry on the store clock."""

    payload: str
    expires_at: float


class InMemoryCacheStore(CacheStore):
    """Process-local store; values are kept as JSON text like in Redis.

    *clock* defaults to :func:`time.monotonic` and can be swapped for a
    fake in tests.
    """

    def __init__(
        self, clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, _StoredValue] = {}
        self._clock = clock
        self.closed = False

    def _ensure_open(self) -> None:
        if self.closed:
            raise CacheUnavailableError("in-memory cache store is closed")

    async def get(self, key: str) -> Any | None:
        self._ensure_open()
        self._evict_expired(self._clock())
        stored = self._entries.get(key)
        if stored is None:
            return None
        return json.loads(stored.payload)

    async def set(self, key: str, value: Any, ttl: float) -> None:
        self._ensure_open()
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._entries[key] = _StoredValue(
            payload=json.dumps(value, ensure_ascii=False),
            expires_at=self._clock() + ttl,
        )

    async def delete(self, key: str) -> int:
        self._ensure_open()
        return 1 if self._entries.pop(key, None) is not None else 0

    async def delete_prefix(self, prefix: str) -> int:
        self._ensure_open()
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    async def clear(self) -> int:
        self._ensure_open()
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_expired(self, now: float) -> None:
        """Remove entries whose TTL has elapsed."""
        before = len(self._entries)
        self._entries = {
            k: v for k, v in self._entries.items() if v.expires_at > now
        }
        evicted = before - len(self._entries)
        if evicted:
            logger.debug("Evicted %d expired cache entries", evicted)
