"""
Content-addressed response cache.

Keys are derived from the canonical JSON form of a request payload, so two
structurally equal requests always address the same entry regardless of key
insertion order. Caching is an optimization only: whenever the backing store
is unavailable the cache degrades to a miss (``get``) or a no-op (``set``).
"""

import hashlib
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from .config import CACHE_TTLS

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "general"


class CacheUnavailable(Exception):
    """Raised by a cache backend when its store cannot be reached."""
    pass


def canonical_json(payload: Any) -> str:
    """Serialize a payload with recursively sorted object keys."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def canonical_key(category: str, payload: Any) -> str:
    """
    Build the cache key for a payload.

    Args:
        category: Cache category tag; prefixes the digest.
        payload: JSON-compatible request material.

    Returns:
        Key of the form ``ai:<category>:<sha256 hex>``.
    """
    digest = hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()
    return f"{key_prefix(category)}{digest}"


def key_prefix(category: str) -> str:
    if category not in CACHE_TTLS:
        category = DEFAULT_CATEGORY
    return f"ai:{category}:"


class CacheBackend(ABC):
    """Storage seam for the cache. Implementations raise CacheUnavailable on outage."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        ...

    @abstractmethod
    def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    def delete_prefix(self, prefix: str) -> int:
        ...


class MemoryCacheBackend(CacheBackend):
    """Thread-safe in-process backend with per-entry expiry."""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._entries: dict[str, tuple[float, bytes]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + ttl_seconds, value)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class CacheStore:
    """
    Category-aware cache with fixed TTL policy and fail-open semantics.

    Values are opaque bytes. Each entry is wrapped with metadata
    (category, cached_at, expires_at) before it reaches the backend.
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        ttls: Optional[dict[str, int]] = None,
    ):
        self.backend = backend or MemoryCacheBackend()
        self.ttls = dict(ttls or CACHE_TTLS)
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "errors": 0}
        self._stats_lock = threading.Lock()

    def ttl_for(self, category: str) -> int:
        """Policy TTL for a category (falls back to the general TTL)."""
        return self.ttls.get(category, self.ttls.get(DEFAULT_CATEGORY, CACHE_TTLS[DEFAULT_CATEGORY]))

    def key_for(self, category: str, payload: Any) -> str:
        return canonical_key(category, payload)

    def get(self, category: str, key: str) -> Optional[bytes]:
        """
        Fetch a cached value.

        Returns:
            The stored bytes, or None on miss, expiry or store outage.
        """
        try:
            raw = self.backend.get(key)
        except CacheUnavailable as e:
            self._bump("errors")
            logger.warning(f"Cache unavailable on get ({category}): {e}")
            return None

        if raw is None:
            self._bump("misses")
            logger.debug(f"Cache MISS: {category} ({key[:24]}...)")
            return None

        value = _unwrap(raw)
        if value is None:
            self._bump("misses")
            return None

        self._bump("hits")
        logger.debug(f"Cache HIT: {category} ({key[:24]}...)")
        return value

    def set(
        self,
        category: str,
        key: str,
        value: bytes,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        """
        Store a value under the category's TTL.

        Returns:
            True if stored, False if the store was unavailable.
        """
        ttl = ttl_seconds or self.ttl_for(category)
        try:
            self.backend.set(key, _wrap(category, value, ttl), ttl)
        except CacheUnavailable as e:
            self._bump("errors")
            logger.warning(f"Cache unavailable on set ({category}): {e}")
            return False

        self._bump("sets")
        logger.debug(f"Cache SET: {category} ({key[:24]}...) TTL: {ttl}s")
        return True

    def invalidate(self, category: str, key: str) -> bool:
        """Remove one entry. Returns False if absent or the store is down."""
        try:
            removed = self.backend.delete(key)
        except CacheUnavailable as e:
            self._bump("errors")
            logger.warning(f"Cache unavailable on invalidate ({category}): {e}")
            return False
        if removed:
            logger.debug(f"Cache INVALIDATED: {category} ({key[:24]}...)")
        return removed

    def invalidate_all(self, category: str) -> int:
        """Remove every entry of a category. Returns the number removed."""
        try:
            count = self.backend.delete_prefix(key_prefix(category))
        except CacheUnavailable as e:
            self._bump("errors")
            logger.warning(f"Cache unavailable on invalidate_all ({category}): {e}")
            return 0
        if count:
            logger.info(f"Cache INVALIDATED ALL: {category} ({count} keys)")
        return count

    def stats(self) -> dict:
        with self._stats_lock:
            stats = dict(self._stats)
        total = stats["hits"] + stats["misses"]
        stats["total_requests"] = total
        stats["hit_rate"] = round(stats["hits"] / total * 100, 2) if total else 0.0
        return stats

    def _bump(self, counter: str) -> None:
        with self._stats_lock:
            self._stats[counter] += 1


def _wrap(category: str, value: bytes, ttl: int) -> bytes:
    now = datetime.now(timezone.utc)
    envelope = {
        "category": category,
        "cached_at": now.isoformat(),
        "expires_at": (now + timedelta(seconds=ttl)).isoformat(),
        "data": value.decode("latin-1"),
    }
    return json.dumps(envelope).encode("utf-8")


def _unwrap(raw: bytes) -> Optional[bytes]:
    try:
        envelope = json.loads(raw.decode("utf-8"))
        return envelope["data"].encode("latin-1")
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        logger.warning(f"Discarding unreadable cache entry: {e}")
        return None
