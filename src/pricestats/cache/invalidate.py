# src/pricestats/cache/invalidate.py
from __future__ import annotations

import logging
import sqlite3

from pricestats.cache.store import StatisticsCache
from pricestats.market.price_store import DateLike, iso_date

logger = logging.getLogger(__name__)


def on_price_write(cache: StatisticsCache, symbol: str, ts: DateLike) -> bool:
    """
    À appeler après chaque barre (symbol, ts) committée.
    Supprime les entrées qui contiennent le symbole, dont la plage peut inclure
    ts, et dont la fraîcheur est antérieure à ts.
    Une erreur de stockage est journalisée mais jamais propagée : l'écriture
    du prix est déjà committée et ne doit pas être annulée.
    """
    try:
        ts_s = iso_date(ts)
    except ValueError:
        ts_s = None
    if ts_s is None:
        logger.error("invalidation ignorée pour %s : date invalide %r", symbol, ts)
        return False

    try:
        n = cache.invalidate(symbol, ts_s)
    except (sqlite3.Error, TypeError, ValueError):
        logger.exception("invalidation du cache échouée pour %s @ %s", symbol, ts_s)
        return False

    if n:
        logger.info("cache: %d entrée(s) invalidée(s) par %s @ %s", n, symbol, ts_s)
    return True
