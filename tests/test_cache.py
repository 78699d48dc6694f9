from __future__ import annotations

import sqlite3

from pricestats.cache import invalidate as invalidate_mod
from pricestats.cache.store import CacheEntry
from pricestats.market.price_store import PriceBar, upsert_bars
from pricestats.model.results import CorrelationRow, StatisticsResult, StockStatistic


def _result(symbol: str = "X", mean: float = 1.5) -> StatisticsResult:
    return StatisticsResult(
        stock_stats=(StockStatistic(symbol, mean, 0.5, 0.5 / mean, 1.0, 2, None),),
        correlation_matrix=(CorrelationRow(symbol, (1.0,)),),
    )


def test_empty_symbols_served_without_storage(cache):
    assert cache.get([]) == StatisticsResult.empty()
    assert cache.put([], None, None, _result()) is None
    assert cache.entries() == []


def test_miss_then_hit(cache, seed):
    seed("X", [1, 2])
    assert cache.get(["X"]) is None

    entry = cache.put(["X"], None, None, _result())
    assert entry.freshness_mark == "2024-01-02"
    assert cache.get(["X"]) == _result()


def test_hit_is_order_independent(cache, seed):
    seed("A", [1, 2])
    seed("B", [3, 4])
    cache.put(["B", "A"], None, None, _result("A"))
    assert cache.get(["A", "B"]) == _result("A")


def test_put_without_data_is_not_stored(cache):
    assert cache.put(["X"], None, None, _result()) is None
    assert cache.get(["X"]) is None
    assert cache.entries() == []


def test_newer_data_makes_entry_stale(cache, seed, conn):
    seed("X", [1, 2])
    cache.put(["X"], None, None, _result())

    # écriture sans passer par l'invalidateur : la vérification de fraîcheur suffit
    upsert_bars(conn, [PriceBar("X", "2024-01-03", 3, 3, 3, 3, 10)])
    assert cache.get(["X"]) is None


def test_data_outside_range_keeps_entry_fresh(cache, seed, conn):
    seed("X", [1, 2])
    cache.put(["X"], None, "2024-01-02", _result())

    upsert_bars(conn, [PriceBar("X", "2024-01-10", 3, 3, 3, 3, 10)])
    assert cache.get(["X"], None, "2024-01-02") == _result()


def test_entry_served_when_data_disappeared(cache, seed, conn):
    seed("X", [1, 2])
    cache.put(["X"], None, None, _result())

    conn.execute("DELETE FROM stocks")
    conn.commit()
    assert cache.get(["X"]) == _result()


def test_put_replaces_previous_entry(cache, seed, conn):
    seed("X", [1, 2])
    cache.put(["X"], None, None, _result(mean=1.5))
    upsert_bars(conn, [PriceBar("X", "2024-01-03", 3, 3, 3, 3, 10)])
    cache.put(["X"], None, None, _result(mean=2.0))

    entries = cache.entries()
    assert len(entries) == 1
    assert entries[0].freshness_mark == "2024-01-03"
    assert cache.get(["X"]) == _result(mean=2.0)


def test_sqlite_entry_round_trips_none_values(conn, seed):
    from pricestats.cache.store import SQLiteStatisticsCache

    seed("X", [1, 2])
    seed("Y", [5])
    result = StatisticsResult(
        stock_stats=(
            StockStatistic("X", 1.5, 0.5, 1 / 3, None, 2, None),
            StockStatistic.insufficient("Y", 1),
        ),
        correlation_matrix=(
            CorrelationRow("X", (1.0, None)),
            CorrelationRow("Y", (None, 1.0)),
        ),
    )
    cache = SQLiteStatisticsCache(conn)
    cache.put(["X", "Y"], None, None, result)
    assert cache.get(["X", "Y"]) == result


# --- invalidation -----------------------------------------------------------


def test_invalidate_removes_entry_with_older_freshness(cache, seed):
    seed("X", [1, 2])
    cache.put(["X"], None, None, _result())

    assert cache.invalidate("X", "2024-01-03") == 1
    assert cache.entries() == []


def test_invalidate_ignores_other_symbols(cache, seed):
    seed("X", [1, 2])
    seed("Y", [1, 2])
    cache.put(["Y"], None, None, _result("Y"))

    assert cache.invalidate("X", "2024-01-03") == 0
    assert [e.key for e in cache.entries()] == ["Y|null|null"]


def test_invalidate_keeps_entry_bounded_before_write(cache, seed):
    seed("X", [1, 2, 3])
    cache.put(["X"], None, "2024-01-02", _result())

    assert cache.invalidate("X", "2024-01-05") == 0
    assert len(cache.entries()) == 1


def test_invalidate_keeps_entry_already_as_fresh(cache, seed):
    seed("X", [1, 2, 3])
    cache.put(["X"], None, None, _result())

    # réécriture d'une barre passée : fraîcheur stockée (01-03) >= ts
    assert cache.invalidate("X", "2024-01-03") == 0
    assert cache.invalidate("X", "2024-01-01") == 0
    assert len(cache.entries()) == 1


def test_invalidate_hits_multi_symbol_entry(cache, seed):
    seed("X", [1, 2])
    seed("Y", [1, 2])
    cache.put(["X", "Y"], None, None, _result())
    cache.put(["Y"], None, None, _result("Y"))

    assert cache.invalidate("X", "2024-02-01") == 1
    assert [e.key for e in cache.entries()] == ["Y|null|null"]


def test_clear(cache, seed):
    seed("X", [1, 2])
    cache.put(["X"], None, None, _result())
    assert cache.clear() == 1
    assert cache.entries() == []


def test_cache_entry_stale_predicate():
    e = CacheEntry("X|null|2024-01-31", ("X",), None, "2024-01-31", _result(), "2024-01-10", "now")
    assert e.is_stale_for("X", "2024-01-11")
    assert not e.is_stale_for("X", "2024-01-10")
    assert not e.is_stale_for("X", "2024-02-01")
    assert not e.is_stale_for("Y", "2024-01-11")


def test_on_price_write_logs_and_swallows_store_errors(caplog):
    class BrokenCache:
        def invalidate(self, symbol, ts):
            raise sqlite3.OperationalError("database is locked")

    with caplog.at_level("ERROR"):
        assert invalidate_mod.on_price_write(BrokenCache(), "X", "2024-01-01") is False
    assert "invalidation du cache échouée" in caplog.text


def test_on_price_write_reports_success(cache, seed):
    seed("X", [1, 2])
    cache.put(["X"], None, None, _result())
    assert invalidate_mod.on_price_write(cache, "X", "2024-01-03") is True
    assert cache.entries() == []


def test_cache_entry_without_date_is_never_stale():
    e = CacheEntry("X|null|null", ("X",), None, None, _result(), "2024-01-10", "now")
    assert not e.is_stale_for("X", None)


def test_invalidate_without_date_keeps_entries(cache, seed):
    seed("X", [1, 2])
    cache.put(["X"], None, None, _result())
    assert cache.invalidate("X", None) == 0
    assert len(cache.entries()) == 1


def test_on_price_write_rejects_missing_or_bad_date(cache, seed, caplog):
    seed("X", [1, 2])
    cache.put(["X"], None, None, _result())

    with caplog.at_level("ERROR"):
        assert invalidate_mod.on_price_write(cache, "X", None) is False
        assert invalidate_mod.on_price_write(cache, "X", "not-a-date") is False
    assert "date invalide" in caplog.text
    assert len(cache.entries()) == 1


def test_on_price_write_logs_type_errors(caplog):
    class StrictCache:
        def invalidate(self, symbol, ts):
            raise TypeError("'>' not supported")

    with caplog.at_level("ERROR"):
        assert invalidate_mod.on_price_write(StrictCache(), "X", "2024-01-01") is False
    assert "invalidation du cache échouée" in caplog.text
