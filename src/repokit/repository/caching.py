"""Query result caching.

Repositories configured with a :class:`CacheProvider` store every read result
under a key derived from the query. Writes invalidate every cached result of the
written entity type at once: cache keys embed a per-type counter, and bumping
that counter makes every earlier key unreachable.
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from aiocache.backends.memory import SimpleMemoryCache
from ulid import ULID

from repokit.repository.query.result import CacheQueryResult

logger = logging.getLogger(__name__)

R = TypeVar("R")

KEY_PREFIX = "repokit"
GLOBAL_COUNTER_KEY = f"{KEY_PREFIX}:global:counter"


class CacheProvider(ABC):
    """Storage for cached query results.

    Attributes:
        expiry: Default lifetime of an entry in seconds, ``None`` for no expiry.
    """

    def __init__(self, expiry: float | None = None) -> None:
        self.expiry = expiry

    @abstractmethod
    async def try_get(self, key: str) -> tuple[bool, Any]:
        """Return ``(True, value)`` on a hit and ``(False, None)`` on a miss."""

    @abstractmethod
    async def set(self, key: str, value: Any, expiry: float | None = None) -> None:
        """Store ``value``, expiring after ``expiry`` seconds or the default lifetime."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Forget ``key``. Missing keys are ignored."""

    @abstractmethod
    async def increment(self, key: str, default: int, step: int) -> int:
        """Add ``step`` to the counter at ``key`` and return the new value.

        A missing counter is created with ``default``, which is returned as is.
        """


class InMemoryCacheProvider(CacheProvider):
    """Process-local cache provider backed by aiocache's ``SimpleMemoryCache``.

    Values are stored as is, not serialised: a hit returns the object that was
    cached. Every provider uses its own namespace.
    """

    def __init__(self, expiry: float | None = None) -> None:
        super().__init__(expiry)
        self.namespace = f"{KEY_PREFIX}:{ULID()}:"
        self._cache = SimpleMemoryCache(namespace=self.namespace)
        self._cache.timeout = 0.0

    async def try_get(self, key: str) -> tuple[bool, Any]:
        if not await self._cache.exists(key):
            return False, None
        return True, await self._cache.get(key)

    async def set(self, key: str, value: Any, expiry: float | None = None) -> None:
        await self._cache.set(key, value, ttl=self.expiry if expiry is None else expiry)

    async def remove(self, key: str) -> None:
        await self._cache.delete(key)

    async def increment(self, key: str, default: int, step: int) -> int:
        if await self._cache.exists(key):
            return int(await self._cache.increment(key, step))
        # Counters never expire
        await self._cache.set(key, default, ttl=None)
        return default

    async def clear(self) -> None:
        await self._cache.clear(namespace=self.namespace)

    async def close(self) -> None:
        await self._cache.close()


@dataclass
class CacheMetrics:
    """Cache usage counters."""

    hits: int = 0
    misses: int = 0
    bypasses: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class QueryCache:
    """Repository-side view over a :class:`CacheProvider`."""

    def __init__(self, provider: CacheProvider) -> None:
        self.provider = provider
        self.metrics = CacheMetrics()

    @staticmethod
    def _type_name(entity_type: type) -> str:
        return f"{entity_type.__module__}.{entity_type.__qualname__}"

    def _type_counter_key(self, entity_type: type) -> str:
        return f"{KEY_PREFIX}:{self._type_name(entity_type)}:counter"

    async def hash_key(self, entity_type: type, key: str) -> str:
        """Return the provider key of ``key`` for ``entity_type``."""
        global_counter = await self.provider.increment(GLOBAL_COUNTER_KEY, 1, 0)
        type_counter = await self.provider.increment(self._type_counter_key(entity_type), 1, 0)
        digest = hashlib.sha256(f"{self._type_name(entity_type)}:{key}".encode()).hexdigest()
        return f"{KEY_PREFIX}:{global_counter}:{type_counter}:{digest}"

    async def get_or_set(
        self,
        entity_type: type,
        key: str | None,
        getter: Callable[[], Awaitable[R]],
    ) -> CacheQueryResult[R]:
        """Return the cached result for ``key``, computing and storing it on a miss.

        A ``None`` key bypasses the cache entirely.
        """
        if key is None:
            self.metrics.bypasses += 1
            return CacheQueryResult(await getter(), cache_used=False)

        hashed = await self.hash_key(entity_type, key)
        found, value = await self.provider.try_get(hashed)
        if found:
            self.metrics.hits += 1
            logger.debug("Cache hit for %s: %s", entity_type.__name__, key)
            return CacheQueryResult(value, cache_used=True)

        self.metrics.misses += 1
        logger.debug("Cache miss for %s: %s", entity_type.__name__, key)
        value = await getter()
        await self.provider.set(hashed, value)
        return CacheQueryResult(value, cache_used=False)

    async def invalidate(self, entity_type: type) -> None:
        """Make every cached result of ``entity_type`` unreachable."""
        await self.provider.increment(self._type_counter_key(entity_type), 1, 1)
        self.metrics.invalidations += 1
        logger.debug("Invalidated cached results of %s", entity_type.__name__)

    async def invalidate_all(self) -> None:
        await self.provider.increment(GLOBAL_COUNTER_KEY, 1, 1)
        self.metrics.invalidations += 1
