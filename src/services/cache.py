"""Thread-safe in-memory TTL cache with an LRU entry ceiling.

Design decisions
────────────────
• **OrderedDict** for O(1) LRU eviction and promotion.
• **Time-to-live** per entry: a value older than ``ttl_seconds`` is treated as
  absent and dropped on the next read, so the staleness bound of anything
  served from the cache is exactly the TTL.
• **threading.Lock** for thread safety (FastAPI serves concurrent requests
  on worker threads, and the pipeline fans out fetches).
• ``ttl_seconds <= 0`` disables caching entirely: ``put`` is a no-op.
• Purely ephemeral: data is lost on process restart.

Usage in AgentRegistry
──────────────────────
>>> cache = TTLCache(ttl_seconds=60)
>>> cache.put("clara-member", config)
>>> cache.get("clara-member")
config
>>> cache.invalidate("clara-member")
True
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60.0
DEFAULT_MAX_ENTRIES = 256


class TTLCache:
    """Least-Recently-Used cache whose entries expire after a fixed TTL."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        # key → (value, expires_at)
        self._store: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._ttl > 0 and self._max_entries > 0

    # ── Core operations ──────────────────────────────────────────────

    def get(self, key: str) -> Any | None:
        """Return the cached value (promoting it to MRU) or ``None`` if absent/expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._store[key]
                logger.debug("Cache: expired %s", key)
                return None
            self._store.move_to_end(key)
            return value

    def put(self, key: str, value: Any) -> None:
        """Insert or overwrite *key*, restarting its TTL.  Evicts LRU entries if full."""
        if not self.enabled:
            return

        with self._lock:
            self._store.pop(key, None)
            while len(self._store) >= self._max_entries:
                evicted_key, _ = self._store.popitem(last=False)
                logger.debug("Cache: evicted %s", evicted_key)
            self._store[key] = (value, self._clock() + self._ttl)

    def invalidate(self, key: str) -> bool:
        """Remove a single key.  Returns ``True`` if the key existed."""
        with self._lock:
            return self._store.pop(key, None) is not None
