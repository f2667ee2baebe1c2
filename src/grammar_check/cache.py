"""Two-tier TTL cache for check results.

Entries are written to a small fast tier. Once an entry has been read more
than ``promote_threshold`` times it is copied into the larger slow tier so
that it survives churn in the fast tier. Expiry is checked lazily on read;
writes sweep expired and overflowing entries, so no timer thread is needed.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Generic, Mapping, TypeVar

from .errors import CacheError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    key: str
    payload: T
    inserted_at: float
    access_count: int = 0
    fingerprint: str | None = None


def make_key(text: str, options: Mapping[str, Any] | None = None) -> str:
    """Return a key for ``text`` checked with the effective ``options``.

    Text is lowercased and whitespace-collapsed first, so trivially different
    inputs share a key. Pass a :func:`text_fingerprint` to ``get``/``set`` when
    payloads carry offsets into the exact text.
    """

    normalised = " ".join(text.lower().split())
    try:
        options_json = json.dumps(options or {}, sort_keys=True, default=_enum_value)
    except (TypeError, ValueError) as exc:
        raise CacheError(f"options are not serialisable: {exc}") from exc
    text_digest = hashlib.sha256(normalised.encode("utf-8")).hexdigest()
    options_digest = hashlib.sha256(options_json.encode("utf-8")).hexdigest()
    return f"{text_digest}:{options_digest[:16]}"


def text_fingerprint(text: str) -> str:
    """Digest of the exact text, used to tell apart inputs that share a key."""

    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _enum_value(value: Any) -> Any:
    if hasattr(value, "value") and isinstance(getattr(value, "value"), (str, int, float)):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serialisable")


class _Tier(Generic[T]):
    def __init__(self, name: str, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"{name} tier capacity must be positive")
        self.name = name
        self.capacity = capacity
        self.entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()

    def __len__(self) -> int:
        return len(self.entries)


class TwoTierCache(Generic[T]):
    def __init__(
        self,
        *,
        ttl_seconds: float = 300.0,
        fast_capacity: int = 100,
        slow_capacity: int = 1000,
        promote_threshold: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.promote_threshold = promote_threshold
        self._clock = clock
        self._fast: _Tier[T] = _Tier("fast", fast_capacity)
        self._slow: _Tier[T] = _Tier("slow", slow_capacity)
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def _expired(self, entry: CacheEntry[T], now: float) -> bool:
        return now - entry.inserted_at > self.ttl_seconds

    def get(self, key: str, *, fingerprint: str | None = None) -> T | None:
        """Return the live payload for ``key``.

        When ``fingerprint`` is given, an entry stored for different exact
        text counts as a miss; its offsets would not fit the caller's text.
        """

        now = self._clock()
        for tier in (self._fast, self._slow):
            entry = tier.entries.get(key)
            if entry is None:
                continue
            if self._expired(entry, now):
                del tier.entries[key]
                self._expirations += 1
                continue
            if fingerprint is not None and entry.fingerprint != fingerprint:
                continue
            tier.entries.move_to_end(key)
            entry.access_count += 1
            if tier is self._fast and entry.access_count > self.promote_threshold:
                self._promote(entry)
            self._hits += 1
            return entry.payload
        self._misses += 1
        return None

    def _promote(self, entry: CacheEntry[T]) -> None:
        if entry.key in self._slow.entries:
            return
        self._slow.entries[entry.key] = CacheEntry(
            key=entry.key,
            payload=entry.payload,
            inserted_at=entry.inserted_at,
            access_count=entry.access_count,
            fingerprint=entry.fingerprint,
        )
        LOGGER.debug("Promoted cache entry %s to slow tier", entry.key[:12])
        self._sweep(self._slow, self._clock())

    def set(self, key: str, payload: T, *, fingerprint: str | None = None) -> None:
        """Insert or replace ``key`` in the fast tier."""

        now = self._clock()
        # Upsert: a stale copy in the slow tier must not outlive the new value
        self._slow.entries.pop(key, None)
        self._fast.entries[key] = CacheEntry(
            key=key, payload=payload, inserted_at=now, fingerprint=fingerprint
        )
        self._fast.entries.move_to_end(key)
        self._sweep(self._fast, now)

    def _sweep(self, tier: _Tier[T], now: float) -> None:
        for key in [k for k, e in tier.entries.items() if self._expired(e, now)]:
            del tier.entries[key]
            self._expirations += 1
        while len(tier.entries) > tier.capacity:
            tier.entries.popitem(last=False)
            self._evictions += 1

    def invalidate(self, key: str) -> None:
        self._fast.entries.pop(key, None)
        self._slow.entries.pop(key, None)

    def clear(self) -> None:
        self._fast.entries.clear()
        self._slow.entries.clear()
        self._hits = self._misses = self._evictions = self._expirations = 0

    def __len__(self) -> int:
        return len(self._fast.entries.keys() | self._slow.entries.keys())

    def stats(self) -> dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / lookups if lookups else 0.0,
            "fast_size": len(self._fast),
            "slow_size": len(self._slow),
            "fast_capacity": self._fast.capacity,
            "slow_capacity": self._slow.capacity,
            "evictions": self._evictions,
            "expirations": self._expirations,
            "ttl_seconds": self.ttl_seconds,
        }
