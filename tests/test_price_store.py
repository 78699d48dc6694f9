from __future__ import annotations

from datetime import date

import pytest

from pricestats.market import price_store
from pricestats.market.price_store import PriceBar, iso_date


def test_iso_date_normalizes_inputs():
    assert iso_date(None) is None
    assert iso_date("") is None
    assert iso_date(date(2024, 1, 5)) == "2024-01-05"
    assert iso_date("2024-01-05T15:30:00+00:00") == "2024-01-05"
    with pytest.raises(ValueError):
        iso_date("05/01/2024")


def test_upsert_overwrites_same_symbol_and_date(conn):
    bar = PriceBar("AAA", "2024-01-01", 1.0, 2.0, 0.5, 1.5, 100)
    price_store.upsert_bars(conn, [bar])
    price_store.upsert_bars(conn, [PriceBar("AAA", "2024-01-01", 1.0, 3.0, 0.5, 2.5, 200)])

    df = price_store.get_bars(conn, "AAA")
    assert len(df) == 1
    assert df["close"].iloc[0] == 2.5
    assert df["volume"].iloc[0] == 200


def test_upsert_empty_is_noop(conn):
    assert price_store.upsert_bars(conn, []) == 0


def test_get_bars_respects_inclusive_bounds(conn, seed):
    seed("AAA", [1, 2, 3, 4, 5])
    df = price_store.get_bars(conn, "AAA", "2024-01-02", "2024-01-04")
    assert list(df["ts"]) == ["2024-01-02", "2024-01-03", "2024-01-04"]


def test_list_symbols_sorted(conn, seed):
    seed("ZZZ", [1])
    seed("AAA", [1])
    assert price_store.list_symbols(conn) == ["AAA", "ZZZ"]


def test_latest_timestamp(conn, seed):
    seed("AAA", [1, 2, 3])
    seed("BBB", [1, 2, 3, 4, 5])

    assert price_store.get_latest_timestamp(conn, ["AAA"]) == "2024-01-03"
    assert price_store.get_latest_timestamp(conn, ["AAA", "BBB"]) == "2024-01-05"
    assert price_store.get_latest_timestamp(conn, ["BBB"], end="2024-01-02") == "2024-01-02"
    assert price_store.get_latest_timestamp(conn, ["AAA"], start="2024-02-01") is None
    assert price_store.get_latest_timestamp(conn, ["NOPE"]) is None
    assert price_store.get_latest_timestamp(conn, []) is None


def test_close_moments_population_std(conn, seed):
    seed("AAA", [10, 12, 11, 13, 12])
    seed("ONE", [42])

    df = price_store.get_close_moments(conn, ["AAA", "ONE", "MISSING"])
    assert list(df["symbol"]) == ["AAA", "ONE"]

    aaa = df[df["symbol"] == "AAA"].iloc[0]
    assert aaa["data_points"] == 5
    assert aaa["mean"] == pytest.approx(11.6)
    assert aaa["std_dev"] == pytest.approx(1.0198039, rel=1e-6)

    one = df[df["symbol"] == "ONE"].iloc[0]
    assert one["data_points"] == 1


def test_close_moments_empty(conn):
    df = price_store.get_close_moments(conn, ["AAA"])
    assert df.empty
    assert list(df.columns) == price_store.MOMENT_COLUMNS


def test_aligned_closes_only_common_dates(conn, seed):
    seed("AAA", [1, 2, 3, 4])                    # 01..04
    seed("BBB", [10, 20, 30], start="2024-01-03")  # 03..05

    df = price_store.get_aligned_closes(conn, "AAA", "BBB")
    assert list(df["ts"]) == ["2024-01-03", "2024-01-04"]
    assert list(df["close_a"]) == [3.0, 4.0]
    assert list(df["close_b"]) == [10.0, 20.0]


def test_market_average_uses_every_symbol_in_store(conn, seed):
    seed("AAA", [1, 2, 3])
    seed("ZZZ", [3, 4, 5])
    seed("LATE", [100], start="2024-01-03")

    df = price_store.get_market_aligned_closes(conn, "AAA")
    assert list(df["stock_close"]) == [1.0, 2.0, 3.0]
    assert list(df["market_close"]) == pytest.approx([2.0, 3.0, 36.0])


def test_market_average_respects_range(conn, seed):
    seed("AAA", [1, 2, 3])
    df = price_store.get_market_aligned_closes(conn, "AAA", start="2024-01-02")
    assert list(df["ts"]) == ["2024-01-02", "2024-01-03"]
