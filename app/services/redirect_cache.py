"""
Redirect link cache: partner booking links keyed by offer id with a fixed TTL.
"""

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from pydantic import ValidationError

from app.models.responses import REDIRECT_TTL_SECONDS, RedirectDescriptor


def is_expired(descriptor: RedirectDescriptor, now: float) -> bool:
    """A descriptor expires once more than 15 minutes passed since it was obtained."""
    return now > descriptor.expires_at


class InMemorySessionStore:
    """
    Session-scoped key-value store holding JSON strings.

    Lives as long as the service container that owns it, the server-side
    equivalent of a browser's session storage.
    """

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)


class RedirectLinkCache:
    """
    TTL cache of RedirectDescriptors stored in a session store.

    Entries are stored under ``<namespace>_redirect_<offer_id>`` as JSON
    ``{"data": ..., "timestamp": ..., "expires": ...}``. Expired entries are
    evicted on lookup and whenever a new link is stored. The cache holds at
    most ``max_size`` links; the oldest one makes room for a new offer.
    """

    def __init__(
        self,
        store: Optional[InMemorySessionStore] = None,
        namespace: str = "benetrip",
        max_size: int = 500,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the redirect cache.

        Args:
            store: Backing key-value store (default: a fresh in-memory store)
            namespace: Key prefix shared with other session entries
            max_size: Maximum number of cached links
            clock: Returns the current time in epoch seconds
        """
        self.store = store if store is not None else InMemorySessionStore()
        self.namespace = namespace
        self.max_size = max_size
        self.clock = clock
        self.logger = logging.getLogger(__name__)

        # Check-then-act on an entry must not interleave with another writer
        self._lock = asyncio.Lock()

        self._stats = {
            'hits': 0,
            'misses': 0,
            'evictions': 0,
            'writes': 0
        }

    @property
    def key_prefix(self) -> str:
        return f"{self.namespace}_redirect_"

    def cache_key(self, offer_id: str) -> str:
        return f"{self.key_prefix}{offer_id}"

    def _decode(self, raw: str) -> Optional[RedirectDescriptor]:
        try:
            entry = json.loads(raw)
            return RedirectDescriptor.model_validate(entry["data"])
        except (json.JSONDecodeError, KeyError, TypeError, ValidationError) as e:
            self.logger.warning(f"Discarding unreadable redirect cache entry: {e}")
            return None

    async def get(self, offer_id: str) -> Optional[RedirectDescriptor]:
        """
        Return the cached descriptor for an offer, or None.

        Expired or unreadable entries are removed and reported as misses.
        """
        key = self.cache_key(offer_id)
        async with self._lock:
            raw = self.store.get_item(key)
            if raw is None:
                self._stats['misses'] += 1
                self.logger.debug(f"Redirect cache miss for offer {offer_id}")
                return None

            descriptor = self._decode(raw)
            now = self.clock()
            if descriptor is None or is_expired(descriptor, now):
                self.store.remove_item(key)
                self._stats['misses'] += 1
                self._stats['evictions'] += 1
                self.logger.debug(f"Evicted expired redirect link for offer {offer_id}")
                return None

            self._stats['hits'] += 1
            self.logger.info(
                f"Redirect cache hit for offer {offer_id} (age: {int(now - descriptor.obtained_at)}s)"
            )
            return descriptor

    def _entries(self) -> Iterator[Tuple[str, Optional[RedirectDescriptor]]]:
        for key in self.store.keys():
            if key.startswith(self.key_prefix):
                yield key, self._decode(self.store.get_item(key) or "")

    def _remove_expired(self, now: float) -> int:
        expired = [
            key for key, descriptor in self._entries()
            if descriptor is None or is_expired(descriptor, now)
        ]
        for key in expired:
            self.store.remove_item(key)
        self._stats['evictions'] += len(expired)
        return len(expired)

    def _evict_oldest(self) -> None:
        entries = [(key, descriptor) for key, descriptor in self._entries() if descriptor is not None]
        if not entries:
            return

        oldest_key, _ = min(entries, key=lambda entry: entry[1].obtained_at)
        self.store.remove_item(oldest_key)
        self._stats['evictions'] += 1
        self.logger.debug(f"Evicted oldest redirect link: {oldest_key}")

    async def put(self, offer_id: str, descriptor: RedirectDescriptor) -> None:
        """Store a descriptor, replacing any entry for the same offer."""
        key = self.cache_key(offer_id)
        entry = {
            "data": descriptor.model_dump(mode="json"),
            "timestamp": descriptor.obtained_at,
            "expires": descriptor.expires_at,
        }
        async with self._lock:
            removed = self._remove_expired(self.clock())
            if removed:
                self.logger.debug(f"Dropped {removed} expired redirect links")

            size = sum(1 for _ in self._entries())
            if self.store.get_item(key) is None and size >= self.max_size:
                self._evict_oldest()

            self.store.set_item(key, json.dumps(entry))
            self._stats['writes'] += 1
        self.logger.info(f"Cached redirect link for offer {offer_id}")

    async def invalidate(self, offer_id: str) -> bool:
        """Remove one entry. Returns True if it existed."""
        key = self.cache_key(offer_id)
        async with self._lock:
            if self.store.get_item(key) is None:
                return False
            self.store.remove_item(key)
            return True

    async def clear_all(self) -> int:
        """Remove every redirect entry of this namespace; other session keys are kept."""
        async with self._lock:
            keys = [key for key in self.store.keys() if key.startswith(self.key_prefix)]
            for key in keys:
                self.store.remove_item(key)
        self.logger.info(f"Cleared all redirect cache entries ({len(keys)} removed)")
        return len(keys)

    async def cleanup_expired(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        async with self._lock:
            removed = self._remove_expired(self.clock())

        if removed:
            self.logger.info(f"Cleaned up {removed} expired redirect links")
        return removed

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary containing cache statistics
        """
        hit_rate = 0.0
        total_requests = self._stats['hits'] + self._stats['misses']
        if total_requests > 0:
            hit_rate = self._stats['hits'] / total_requests

        return {
            'namespace': self.namespace,
            'ttl': REDIRECT_TTL_SECONDS,
            'max_size': self.max_size,
            'current_size': sum(1 for key in self.store.keys() if key.startswith(self.key_prefix)),
            'hits': self._stats['hits'],
            'misses': self._stats['misses'],
            'hit_rate': round(hit_rate, 3),
            'evictions': self._stats['evictions'],
            'writes': self._stats['writes']
        }
