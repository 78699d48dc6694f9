from __future__ import annotations

from datetime import date, timedelta

import pytest

from pricestats.cache.store import InMemoryStatisticsCache, SQLiteStatisticsCache
from pricestats.market.price_store import PriceBar, upsert_bars
from pricestats.storage.db import connect, init_db


@pytest.fixture
def conn(tmp_path):
    c = connect(tmp_path / "pricestats_test.db")
    init_db(c)
    yield c
    c.close()


@pytest.fixture
def seed(conn):
    """seed("AAA", [10, 12, 11], start="2024-01-01") : une barre par jour consécutif."""

    def _seed(symbol: str, closes, start: str = "2024-01-01") -> list[PriceBar]:
        d0 = date.fromisoformat(start)
        bars = [
            PriceBar(
                symbol=symbol,
                timestamp=(d0 + timedelta(days=i)).isoformat(),
                open=float(c),
                high=float(c),
                low=float(c),
                close=float(c),
                volume=1000,
            )
            for i, c in enumerate(closes)
        ]
        upsert_bars(conn, bars)
        return bars

    return _seed


@pytest.fixture(params=["sqlite", "memory"])
def cache(request, conn):
    if request.param == "sqlite":
        return SQLiteStatisticsCache(conn)
    return InMemoryStatisticsCache(conn)
