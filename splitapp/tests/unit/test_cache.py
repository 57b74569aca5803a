"""
tests/unit/test_cache.py — Unit tests for the balance view cache.

What this file proves:
  - Keys are explicit (entity, scope_id) pairs
  - A write inside a group touches the group view plus each affected user's
    global view, sorted and de-duplicated
  - Entries expire after the TTL; a TTL of 0 disables storage
  - invalidate() reports whether an entry was present
"""

from __future__ import annotations

from unittest.mock import patch

from splitapp.app.cache import (
    GLOBAL_BALANCE,
    GROUP_LEDGER,
    BalanceCache,
    CacheKey,
    global_balance_key,
    group_ledger_key,
    keys_for_group_write,
)


def test_key_builders():
    assert group_ledger_key(4) == CacheKey(GROUP_LEDGER, 4)
    assert global_balance_key(9) == CacheKey(GLOBAL_BALANCE, 9)
    assert group_ledger_key(4) == ("group_ledger", 4)


def test_keys_for_group_write_sorted_and_unique():
    keys = keys_for_group_write(7, [3, 1, 3, 2])

    assert keys == [
        CacheKey("group_ledger", 7),
        CacheKey("global_balance", 1),
        CacheKey("global_balance", 2),
        CacheKey("global_balance", 3),
    ]


def test_set_then_get():
    cache = BalanceCache(ttl_seconds=30)
    cache.set(group_ledger_key(1), {"x": 1})

    assert cache.get(group_ledger_key(1)) == {"x": 1}
    assert group_ledger_key(1) in cache
    assert len(cache) == 1


def test_zero_ttl_disables_storage():
    cache = BalanceCache(ttl_seconds=0)
    cache.set(group_ledger_key(1), {"x": 1})

    assert cache.get(group_ledger_key(1)) is None
    assert len(cache) == 0


def test_entries_expire():
    cache = BalanceCache(ttl_seconds=10)
    with patch("splitapp.app.cache.time.monotonic", return_value=100.0):
        cache.set(global_balance_key(2), "value")
    with patch("splitapp.app.cache.time.monotonic", return_value=109.0):
        assert cache.get(global_balance_key(2)) == "value"
    with patch("splitapp.app.cache.time.monotonic", return_value=110.0):
        assert cache.get(global_balance_key(2)) is None
    assert len(cache) == 0


def test_invalidate_reports_presence():
    cache = BalanceCache(ttl_seconds=30)
    cache.set(group_ledger_key(1), "ledger")

    assert cache.invalidate(group_ledger_key(1)) is True
    assert cache.invalidate(group_ledger_key(1)) is False
    assert cache.get(group_ledger_key(1)) is None


def test_invalidate_many_returns_the_keys_it_was_given():
    cache = BalanceCache(ttl_seconds=30)
    keys = keys_for_group_write(3, [1, 2])
    for key in keys:
        cache.set(key, "v")

    assert cache.invalidate_many(iter(keys)) == keys
    assert len(cache) == 0


def test_init_app_reads_ttl_and_registers():
    class _App:
        config = {"BALANCE_CACHE_TTL_SECONDS": 5}
        extensions: dict = {}

    app = _App()
    cache = BalanceCache(ttl_seconds=30)
    cache.set(group_ledger_key(1), "stale")

    cache.init_app(app)

    assert cache.ttl_seconds == 5
    assert len(cache) == 0
    assert app.extensions["balance_cache"] is cache
