"""
Search Cache - query fingerprinting and short-lived result caching
"""
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, List, Mapping, NamedTuple, Optional, Union
import hashlib
import json
import logging
import time

from fastapi import Request

from flybook.schemas.flight import NormalizedFlight, SearchQuery

logger = logging.getLogger(__name__)

REDIS_KEY_PREFIX = "flights:search:"


def fingerprint(query: Union[SearchQuery, Mapping[str, Any]]) -> str:
    """
    Stable SHA-256 digest of a search query.

    SearchQuery instances are reduced to their upstream parameters first, so a
    model and the equivalent parameter dict produce the same key.
    """
    if isinstance(query, SearchQuery):
        query = query.to_upstream_params()
    canonical = json.dumps(dict(query), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class CacheEntry(NamedTuple):
    value: tuple
    expires_at: float


class SearchCache(ABC):
    """get/put over a fingerprint key; backends are interchangeable"""

    @abstractmethod
    async def get(self, key: str) -> Optional[List[NormalizedFlight]]:
        ...

    @abstractmethod
    async def put(self, key: str, value: List[NormalizedFlight], ttl_seconds: float) -> None:
        ...


class MemoryTTLCache(SearchCache):
    """
    Single-process cache. Expired entries are dropped lazily on lookup.

    max_entries enables LRU eviction; by default the cache is unbounded.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        max_entries: Optional[int] = None,
    ):
        self._clock = clock
        self._max_entries = max_entries
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    async def get(self, key: str) -> Optional[List[NormalizedFlight]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        if self._max_entries is not None:
            self._entries.move_to_end(key)
        # Callers get their own copies so they cannot alter the cached result
        return [flight.model_copy(deep=True) for flight in entry.value]

    async def put(self, key: str, value: List[NormalizedFlight], ttl_seconds: float) -> None:
        stored = tuple(flight.model_copy(deep=True) for flight in value)
        self._entries[key] = CacheEntry(stored, self._clock() + ttl_seconds)
        self._entries.move_to_end(key)
        if self._max_entries is not None:
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Search cache evicted {evicted}")


class RedisTTLCache(SearchCache):
    """Shared cache for multi-instance deployments, expiry enforced by Redis"""

    def __init__(self, client):
        self.client = client

    async def get(self, key: str) -> Optional[List[NormalizedFlight]]:
        value = await self.client.get(REDIS_KEY_PREFIX + key)
        if not value:
            return None
        try:
            return [NormalizedFlight.model_validate(item) for item in json.loads(value)]
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            await self.client.delete(REDIS_KEY_PREFIX + key)
            return None

    async def put(self, key: str, value: List[NormalizedFlight], ttl_seconds: float) -> None:
        payload = json.dumps([f.model_dump(mode="json", by_alias=True) for f in value])
        await self.client.setex(REDIS_KEY_PREFIX + key, max(int(ttl_seconds), 1), payload)


def get_search_cache(request: Request) -> SearchCache:
    """
    Dependency that provides the application's search cache
    Usage: cache: SearchCache = Depends(get_search_cache)
    """
    return request.app.state.search_cache
