"""TTL cache for frequently read, cheaply recomputed payloads."""
from __future__ import annotations

from threading import RLock
from typing import Callable, Generic, Optional, TypeVar

from cachetools import TTLCache

T = TypeVar("T")


class KeyedTTLCache(Generic[T]):
    """A namespaced ``TTLCache`` safe to share between request threads."""

    def __init__(self, namespace: str, ttl: int, maxsize: int = 512) -> None:
        self.namespace = namespace
        self._cache: TTLCache[str, T] = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = RLock()

    def _key(self, key: object) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: object) -> Optional[T]:
        with self._lock:
            return self._cache.get(self._key(key))

    def set(self, key: object, value: T) -> None:
        with self._lock:
            self._cache[self._key(key)] = value

    def get_or_compute(self, key: object, compute: Callable[[], T], refresh: bool = False) -> T:
        if not refresh:
            cached = self.get(key)
            if cached is not None:
                return cached
        value = compute()
        self.set(key, value)
        return value

    def invalidate(self, key: object) -> None:
        with self._lock:
            self._cache.pop(self._key(key), None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
