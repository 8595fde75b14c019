"""In-process result cache with hit/miss accounting"""

from typing import Any, Callable, Dict, Hashable, Optional
import time

from cachetools import TTLCache


class ResultCache:
    """
    TTL cache for responses from slow outside services (weather, disease scans, tasks).
    """

    def __init__(self, ttl: float, maxsize: int = 1000, timer: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._cache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        value = self._cache.get(key)
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    def set(self, key: Hashable, value: Any):
        self._cache[key] = value

    def delete(self, key: Hashable):
        self._cache.pop(key, None)

    def delete_prefix(self, prefix: str):
        for key in [k for k in list(self._cache.keys()) if str(k).startswith(prefix)]:
            self._cache.pop(key, None)

    def clear(self):
        self._cache.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self):
        return len(self._cache)

    def status(self) -> Dict:
        lookups = self.hits + self.misses
        return {
            "size": len(self._cache),
            "maxsize": self._cache.maxsize,
            "ttl_seconds": self.ttl,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups, 3) if lookups else 0.0,
            "keys": [str(k) for k in self._cache.keys()],
        }
