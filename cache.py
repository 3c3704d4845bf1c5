# cache.py
"""In-memory TTL cache for upstream responses.

Entries are ``key -> (value, expires_at)``. A read never returns an expired
entry; it drops it on the spot. ``sweep`` reclaims everything that expired
without being read, and ``run_sweeper`` calls it periodically from the app's
lifespan. The clock is injectable so tests can move time by hand.
"""

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300.0  # seconds


class TTLCache:
    def __init__(self, default_ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be > 0")
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value if still fresh, else None."""
        now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self.misses += 1
                return None
            value, expires_at = entry
            if now >= expires_at:
                del self._store[key]
                self.misses += 1
                return None
            self.hits += 1
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value; last write wins."""
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        with self._lock:
            self._store[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def sweep(self) -> int:
        """Remove all expired entries. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, exp) in self._store.items() if now >= exp]
            for key in expired:
                del self._store[key]
        return len(expired)

    def stats(self) -> dict:
        with self._lock:
            entries = len(self._store)
        return {"entries": entries, "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        return len(self._store)


async def run_sweeper(cache: TTLCache, interval_s: float) -> None:
    """Sweep ``cache`` every ``interval_s`` seconds until cancelled."""
    logger.info("Starting cache sweeper", extra={"interval_s": interval_s})
    try:
        while True:
            await asyncio.sleep(interval_s)
            removed = cache.sweep()
            if removed:
                logger.debug("Swept expired cache entries", extra={"removed": removed})
    except asyncio.CancelledError:
        logger.info("Cache sweeper cancelled")
        raise
