"""
cache.py — Process-wide read cache for computed balance views.

Balances are a pure reduction over the full expense and payment history, so
they can always be recomputed. This cache only saves the recomputation within
a short staleness window.

Keys are explicit `(entity, scope_id)` pairs:
  ("group_ledger", group_id)   — group-scoped balance views (any viewer)
  ("global_balance", user_id)  — one user's balance across all their groups

Every mutating service call returns the keys it makes stale, so tests can
assert exactly which views an operation touched. The route evicts them with
invalidate_many() after its commit succeeds. Stale reads inside the TTL
window are acceptable; a missed invalidation is a bug.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Iterable, NamedTuple

logger = logging.getLogger(__name__)

GROUP_LEDGER   = "group_ledger"
GLOBAL_BALANCE = "global_balance"


class CacheKey(NamedTuple):
    entity: str
    scope_id: int


def group_ledger_key(group_id: int) -> CacheKey:
    return CacheKey(GROUP_LEDGER, group_id)


def global_balance_key(user_id: int) -> CacheKey:
    return CacheKey(GLOBAL_BALANCE, user_id)


def keys_for_group_write(group_id: int, user_ids: Iterable[int]) -> list[CacheKey]:
    """
    Keys affected by a write inside one group: the group's ledger view plus
    the global view of every user whose debts may have moved.
    """
    keys = [group_ledger_key(group_id)]
    keys.extend(global_balance_key(uid) for uid in sorted(set(user_ids)))
    return keys


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    ttl_seconds: int
    hits: int = field(default=0)

    def is_expired(self, now: float | None = None) -> bool:
        now = time.monotonic() if now is None else now
        return now - self.created_at >= self.ttl_seconds


class BalanceCache:
    """
    TTL cache keyed by CacheKey. Thread-safe; one instance per process.

    A TTL of 0 disables storage entirely (get always misses), which is what
    the testing config uses unless a test opts in.
    """

    def __init__(self, ttl_seconds: int = 30) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._lock = RLock()

    def init_app(self, app) -> None:
        self.ttl_seconds = int(app.config.get("BALANCE_CACHE_TTL_SECONDS", 30))
        self.clear()
        app.extensions["balance_cache"] = self

    def get(self, key: CacheKey) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._entries[key]
                return None
            entry.hits += 1
            return entry.value

    def set(self, key: CacheKey, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[key] = CacheEntry(
                value=value,
                created_at=time.monotonic(),
                ttl_seconds=self.ttl_seconds,
            )

    def invalidate(self, key: CacheKey) -> bool:
        """Drops one key. Returns True if an entry was present."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        logger.debug("Invalidated balance cache key %s (present=%s)", key, removed)
        return removed

    def invalidate_many(self, keys: Iterable[CacheKey]) -> list[CacheKey]:
        keys = list(keys)
        for key in keys:
            self.invalidate(key)
        return keys

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: CacheKey) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
