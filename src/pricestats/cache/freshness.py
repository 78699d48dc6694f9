# src/pricestats/cache/freshness.py
from __future__ import annotations

import sqlite3
from typing import Optional, Sequence

from pricestats.market import price_store
from pricestats.market.price_store import DateLike


def latest_timestamp(
    conn: sqlite3.Connection,
    symbols: Sequence[str],
    start: DateLike = None,
    end: DateLike = None,
) -> Optional[str]:
    """
    Marque de fraîcheur d'une requête : dernier ts présent pour ces symboles
    dans la plage. None si aucun symbole ou aucune barre.
    """
    if not symbols:
        return None
    return price_store.get_latest_timestamp(conn, symbols, start, end)
