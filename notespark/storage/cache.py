"""
In-process cache of formatted notes.

Entries are keyed by namespace, tone, text length and a sha256 digest of
the full text. They expire after a fixed TTL and are evicted
oldest-first once capacity is exceeded. Entries are replaced whole, never
updated in place. A lock guards every access so the cache can be shared
across worker threads.
"""

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from ..extraction.models import Tone

logger = logging.getLogger(__name__)

V = TypeVar("V")

DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_CAPACITY = 50


def content_fingerprint(text: str) -> str:
    """sha256 hex digest of the full text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def make_cache_key(text: str, tone, namespace: str = "") -> str:
    tone_value = Tone.normalize(tone).value
    prefix = f"{namespace}:" if namespace else ""
    return f"{prefix}{tone_value}_{len(text)}_{content_fingerprint(text)}"


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    key: str
    value: V
    inserted_at: float


class ResponseCache(Generic[V]):
    """Bounded, time-expiring cache."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], float] = time.monotonic
    ):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.ttl_seconds = ttl_seconds
        self.capacity = capacity
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[V]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if self._clock() - entry.inserted_at >= self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.value

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(key=key, value=value, inserted_at=self._clock())
            while len(self._entries) > self.capacity:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache evicted {evicted_key}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
        logger.info("Response cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self):
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self.capacity,
                "ttl_seconds": self.ttl_seconds,
                "hits": self.hits,
                "misses": self.misses,
            }
