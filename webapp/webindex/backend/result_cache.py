"""Time-boxed, size-capped cache of search responses.

Keys are normalized query strings (plus paging). A key is computed at most
once at a time: concurrent callers asking for the same missing key wait for
the first one instead of running the query again.
"""
import logging
import threading
import time
from collections import OrderedDict

logger = logging.getLogger(__name__)


def normalize_key(query, *extra):
    base = " ".join((query or "").split()).lower()
    if not extra:
        return base
    return "|".join([base] + [str(e) for e in extra])


class ResultCache:

    def __init__(self, ttl_seconds=30 * 60, max_entries=500, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries = OrderedDict()  # key -> (stored_at, value)
        self._lock = threading.Lock()
        self._key_locks = {}

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def _expired(self, stored_at):
        return self._clock() - stored_at > self.ttl_seconds

    def get(self, key, default=None):
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return default
            stored_at, value = item
            if self._expired(stored_at):
                del self._entries[key]
                return default
            return value

    def put(self, key, value):
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (self._clock(), value)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Result cache full, evicted %r", evicted)

    def get_or_compute(self, key, compute, cacheable=None):
        """Cached value for ``key``; ``compute()`` runs at most once per key at a time.

        ``cacheable(value)`` can veto storing a value (e.g. partial results).
        """
        missing = object()
        value = self.get(key, missing)
        if value is not missing:
            return value

        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        try:
            with key_lock:
                value = self.get(key, missing)
                if value is missing:
                    value = compute()
                    if cacheable is None or cacheable(value):
                        self.put(key, value)
        finally:
            with self._lock:
                if self._key_locks.get(key) is key_lock and not key_lock.locked():
                    del self._key_locks[key]
        return value

    def purge_expired(self):
        with self._lock:
            stale = [k for k, (stored_at, _) in self._entries.items() if self._expired(stored_at)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.info("Purged %d expired search results", len(stale))
        return len(stale)

    def clear(self):
        with self._lock:
            self._entries.clear()
