"""
Read-through response cache with explicit invalidation.

One ResponseCache lives on app.state and is handed to handlers through the
get_cache dependency; writers drop the keys they affect.
"""
from typing import Any, Callable, Optional

import structlog
from cachetools import TTLCache
from fastapi import Request

from config import CACHE_TTL_SECONDS

logger = structlog.get_logger(__name__)

PRODUCTS_KEY = "products_all"
JOURNEY_GROUPED_KEY = "journey_resources_grouped"


class ResponseCache:
    def __init__(self, ttl: int = CACHE_TTL_SECONDS, maxsize: int = 256, timer: Optional[Callable[[], float]] = None):
        if timer is None:
            self._store = TTLCache(maxsize=maxsize, ttl=ttl)
        else:
            self._store = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)

    def get(self, key: str) -> Optional[Any]:
        value = self._store.get(key)
        logger.debug("cache_lookup", key=key, hit=value is not None)
        return value

    def set(self, key: str, value: Any):
        self._store[key] = value

    def invalidate(self, *keys: str):
        for key in keys:
            self._store.pop(key, None)

    def clear(self):
        self._store.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._store


def get_cache(request: Request) -> ResponseCache:
    return request.app.state.cache
