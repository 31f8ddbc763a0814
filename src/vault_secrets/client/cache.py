"""In-memory TTL cache for secrets read from Vault."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


def cache_key(path: str, version: int | None = None) -> str:
    return f"{path}:{version if version is not None else 'latest'}"


@dataclass
class CacheEntry(Generic[T]):
    data: T
    created_at: float
    expires_at: float


class SecretCache(Generic[T]):
    """TTL map keyed by ``path:version`` with prefix invalidation.

    Entries are checked lazily: an expired entry is evicted the first time
    it is looked up after its expiry.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}

    def get(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._entries[key]
            return None
        return entry.data

    def set(self, key: str, value: T) -> None:
        now = self._clock()
        self._entries[key] = CacheEntry(value, created_at=now, expires_at=now + self._ttl)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``; returns the count."""
        stale = [key for key in self._entries if key.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
