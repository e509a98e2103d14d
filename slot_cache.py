"""
Cache for assembled slot views.

Entries are keyed by "<resourceType>-<period>" and stored in a Flask-Caching
SimpleCache. Freshness is judged against the injected clock on read, so an
entry older than the TTL is dropped lazily; the backend's own timeout only
bounds memory. Each process holds its own cache; explicit invalidation after
a signup or cancellation plus the TTL bound staleness, nothing stronger.
"""
import logging
import threading
import time
from collections import namedtuple

from flask_caching.backends import SimpleCache

logger = logging.getLogger(__name__)

DEFAULT_TTL = 60 * 60  # 1 hour
DEFAULT_THRESHOLD = 500

MISS = object()

CacheEntry = namedtuple("CacheEntry", ["key", "data", "timestamp"])


def cache_key(resource_type, period) -> str:
    return f"{getattr(resource_type, 'value', resource_type)}-{period}"


class SlotCache:
    """Keyed, time-boxed cache of slot responses."""

    def __init__(self, ttl=DEFAULT_TTL, clock=time.time, threshold=DEFAULT_THRESHOLD):
        self.ttl = ttl
        self._clock = clock
        # Backend timeout trails the TTL so it never evicts a fresh entry
        self._backend = SimpleCache(threshold=threshold, default_timeout=int(ttl) + 1)
        self._keys = set()
        self._lock = threading.Lock()

    def _drop(self, key):
        self._backend.delete(key)
        self._keys.discard(key)

    def get(self, key):
        """Return cached data, or MISS when absent or older than the TTL."""
        with self._lock:
            entry = self._backend.get(key)
            if entry is None:
                self._keys.discard(key)
                logger.debug(f"[Cache] MISS for {key}")
                return MISS
            if self._clock() - entry.timestamp > self.ttl:
                logger.debug(f"[Cache] EXPIRED for {key}")
                self._drop(key)
                return MISS
            logger.debug(f"[Cache] HIT for {key}")
            return entry.data

    def set(self, key, data):
        with self._lock:
            self._backend.set(key, CacheEntry(key, data, self._clock()))
            self._keys.add(key)
        logger.debug(f"[Cache] SET for {key}")

    def invalidate(self, key=None):
        """Drop one key, or everything when no key is given."""
        with self._lock:
            if key is None:
                self._backend.clear()
                self._keys.clear()
            else:
                self._drop(key)
        logger.info(f"[Cache] INVALIDATE {key or 'ALL'}")

    def list_keys(self):
        with self._lock:
            # The backend prunes on its own once over threshold
            self._keys = {key for key in self._keys if self._backend.has(key)}
            return sorted(self._keys)

    def invalidate_prefix(self, prefix) -> int:
        """Drop every key starting with `prefix`; returns how many were dropped."""
        keys = [key for key in self.list_keys() if key.startswith(prefix)]
        for key in keys:
            self.invalidate(key)
        return len(keys)

    def stats(self):
        now = self._clock()
        entries = []
        for key in self.list_keys():
            with self._lock:
                entry = self._backend.get(key)
            if entry is not None:
                entries.append(entry)
        return {
            "size": len(entries),
            "keys": [entry.key for entry in entries],
            "entries": [
                {"key": entry.key, "age": f"{int(now - entry.timestamp)}s"}
                for entry in entries
            ],
        }
