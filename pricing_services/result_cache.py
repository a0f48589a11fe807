"""
pricing_services.result_cache -- Version-keyed cache of pricing results.

Responsibility:
    Remembers finished PricingResults keyed by the canonical request, the
    pricing configuration checksum and the rule set version. A publish that
    changes the rules changes the version, so stale entries are simply never
    looked up again; ``invalidate_by_rule_set_version`` reclaims them.

Invariants:
    - Entries are immutable PricingResult values; a hit returns the same
      object that was stored.
    - The store lock is held only around dict operations, never while a
      result is being computed.
    - TTL is a secondary safety net measured with the injected Clock.
"""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from pricing_kernel.domain.clock import Clock, SystemClock
from pricing_kernel.domain.pricing import PricingRequest, PricingResult
from pricing_kernel.logging_config import get_logger
from pricing_kernel.utils.hashing import canonicalize_json

logger = get_logger("services.result_cache")


@dataclass(frozen=True, slots=True)
class CacheEntry:
    result: PricingResult
    rule_set_version: str
    stored_at: datetime


@runtime_checkable
class CacheStore(Protocol):
    """Key/value storage behind ResultCache. Implementations must be thread-safe."""

    def get(self, key: str) -> CacheEntry | None: ...

    def set(self, key: str, entry: CacheEntry) -> None: ...

    def delete(self, key: str) -> None: ...

    def entries(self) -> list[tuple[str, CacheEntry]]: ...

    def clear(self) -> None: ...


class InMemoryCacheStore:
    """Dict-backed store guarded by a single lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def entries(self) -> list[tuple[str, CacheEntry]]:
        with self._lock:
            return list(self._entries.items())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def build_cache_key(request: PricingRequest, config_checksum: str, rule_set_version: str) -> str:
    """
    ``<sha256 of canonical request + config checksum>:<rule_set_version>``.

    The request must already be normalized so equivalent requests (country
    order, code case, implicit date or currency) share one key.
    """
    if request.as_of_date is None or request.currency_code is None:
        raise ValueError("Cache keys are built from normalized requests only")
    canonical = canonicalize_json({"request": request.to_dict(), "config_checksum": config_checksum})
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{digest}:{rule_set_version}"


class ResultCache:
    """
    Pricing result cache over a pluggable CacheStore.

    Usage:
        cache = ResultCache(ttl_seconds=3600)
        key = build_cache_key(request, checksum, snapshot.version)
        result = cache.get(key)
        if result is None:
            result = compute()
            cache.put(key, result, snapshot.version)
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        clock: Clock | None = None,
        ttl_seconds: float | None = None,
    ):
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self._store = store if store is not None else InMemoryCacheStore()
        self._clock = clock or SystemClock()
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds is not None else None

    @property
    def store(self) -> CacheStore:
        return self._store

    def get(self, key: str) -> PricingResult | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._ttl is not None and self._clock.now() - entry.stored_at >= self._ttl:
            self._store.delete(key)
            logger.debug("cache_entry_expired", extra={
                "rule_set_version": entry.rule_set_version,
                "stored_at": entry.stored_at.isoformat(),
            })
            return None
        return entry.result

    def put(self, key: str, result: PricingResult, rule_set_version: str) -> None:
        if result.rule_set_version != rule_set_version:
            raise ValueError(
                f"Result was computed against rule set {result.rule_set_version}, "
                f"not {rule_set_version}"
            )
        self._store.set(
            key,
            CacheEntry(result=result, rule_set_version=rule_set_version, stored_at=self._clock.now()),
        )

    def invalidate_by_rule_set_version(self, version: str) -> int:
        """Drop every entry computed against ``version``. Returns the count removed."""
        removed = 0
        for key, entry in self._store.entries():
            if entry.rule_set_version == version:
                self._store.delete(key)
                removed += 1
        logger.info("cache_invalidated", extra={
            "rule_set_version": version,
            "removed_count": removed,
        })
        return removed

    def clear(self) -> None:
        self._store.clear()
