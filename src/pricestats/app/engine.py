# src/pricestats/app/engine.py

from __future__ import annotations

import logging
import math
import os
import re
import shutil
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from pricestats.cache import freshness
from pricestats.cache.invalidate import on_price_write
from pricestats.cache.store import InMemoryStatisticsCache, SQLiteStatisticsCache, StatisticsCache
from pricestats.market import price_store
from pricestats.market.price_store import DateLike, PriceBar, iso_date
from pricestats.model.estimate import (
    MIN_OBSERVATIONS,
    coefficient_of_variation,
    pearson_correlation,
    population_beta,
)
from pricestats.model.results import CorrelationRow, StatisticsResult, StockStatistic
from pricestats.storage.db import get_db_path

logger = logging.getLogger(__name__)

_BAR_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class PriceBarError(ValueError):
    pass


def build_cache(conn: sqlite3.Connection, backend: str | None = None) -> StatisticsCache:
    """Cache choisi par PRICESTATS_CACHE ('sqlite' par défaut, ou 'memory')."""
    backend = (backend or os.getenv("PRICESTATS_CACHE") or "sqlite").lower()
    if backend == "sqlite":
        return SQLiteStatisticsCache(conn)
    if backend == "memory":
        return InMemoryStatisticsCache(conn)
    raise ValueError(f"backend de cache inconnu: {backend!r} (attendu: sqlite, memory)")


def _stock_statistic(conn, row, start: DateLike, end: DateLike) -> StockStatistic:
    symbol = row["symbol"]
    mean = float(row["mean"])
    std_dev = float(row["std_dev"])

    aligned = price_store.get_market_aligned_closes(conn, symbol, start, end)
    beta = population_beta(aligned["stock_close"], aligned["market_close"])

    return StockStatistic(
        symbol=symbol,
        mean=mean,
        std_dev=std_dev,
        coefficient_of_variation=coefficient_of_variation(mean, std_dev),
        beta=beta,
        data_points=int(row["data_points"]),
        message=None,
    )


def compute_stock_stats(
    conn: sqlite3.Connection,
    symbols: Sequence[str],
    start: DateLike = None,
    end: DateLike = None,
) -> list[StockStatistic]:
    """
    Une ligne par symbole distinct :
    d'abord les symboles ayant >= 2 barres (ordre de la requête de moments, par symbole),
    puis les autres dans l'ordre d'entrée, avec champs numériques à None.
    """
    moments = price_store.get_close_moments(conn, symbols, start, end)

    stats: list[StockStatistic] = []
    counts: dict[str, int] = {}
    for _, row in moments.iterrows():
        counts[row["symbol"]] = int(row["data_points"])
        if int(row["data_points"]) >= MIN_OBSERVATIONS:
            stats.append(_stock_statistic(conn, row, start, end))

    seen = {s.symbol for s in stats}
    for symbol in symbols:
        if symbol in seen:
            continue
        seen.add(symbol)
        stats.append(StockStatistic.insufficient(symbol, counts.get(symbol, 0)))
    return stats


def compute_correlation_matrix(
    conn: sqlite3.Connection,
    symbols: Sequence[str],
    start: DateLike = None,
    end: DateLike = None,
) -> list[CorrelationRow]:
    """Matrice dans l'ordre d'entrée ; triangle supérieur calculé puis recopié."""
    n = len(symbols)
    matrix: list[list[Optional[float]]] = [[None] * n for _ in range(n)]

    for i in range(n):
        matrix[i][i] = 1.0
        for j in range(i + 1, n):
            aligned = price_store.get_aligned_closes(conn, symbols[i], symbols[j], start, end)
            corr = pearson_correlation(aligned["close_a"], aligned["close_b"])
            matrix[i][j] = corr
            matrix[j][i] = corr

    return [CorrelationRow(symbol=symbols[i], correlations=tuple(matrix[i])) for i in range(n)]


def compute_statistics(
    conn: sqlite3.Connection,
    symbols: Sequence[str],
    start: DateLike = None,
    end: DateLike = None,
) -> StatisticsResult:
    """Calcul direct contre la série de prix, sans cache."""
    symbols = list(symbols)
    if not symbols:
        return StatisticsResult.empty()

    return StatisticsResult(
        stock_stats=tuple(compute_stock_stats(conn, symbols, start, end)),
        correlation_matrix=tuple(compute_correlation_matrix(conn, symbols, start, end)),
    )


def get_or_compute_statistics(
    conn: sqlite3.Connection,
    cache: StatisticsCache,
    symbols: Sequence[str],
    start: DateLike = None,
    end: DateLike = None,
) -> StatisticsResult:
    """
    Point d'entrée des appelants : cache d'abord, sinon calcul puis put.
    Ne lève jamais pour une liste vide ; les erreurs sqlite3 sont propagées.
    """
    symbols = list(symbols)
    if not symbols:
        return StatisticsResult.empty()

    start, end = iso_date(start), iso_date(end)

    cached = cache.get(symbols, start, end)
    if cached is not None:
        return cached

    # marque lue avant le calcul : une barre écrite pendant le calcul rendra l'entrée obsolète
    mark = freshness.latest_timestamp(conn, symbols, start, end)
    result = compute_statistics(conn, symbols, start, end)
    logger.info("statistiques calculées: %d symbole(s), plage %s..%s", len(symbols), start, end)
    if mark is not None:
        cache.put(symbols, start, end, result, freshness_mark=mark)
    return result


def invalidate(cache: StatisticsCache, symbol: str, ts: DateLike) -> bool:
    return on_price_write(cache, symbol, ts)


def validate_bar(bar: PriceBar) -> PriceBar:
    """Contrôles d'une barre avant écriture ; retourne la barre normalisée."""
    symbol = (bar.symbol or "").strip().upper()
    if not symbol:
        raise PriceBarError("symbol vide")
    if "," in symbol:
        raise PriceBarError(f"symbol invalide: {symbol!r}")

    raw_ts = bar.timestamp
    if isinstance(raw_ts, str) and not _BAR_DATE_RE.match(raw_ts.strip()):
        raise PriceBarError(f"date invalide (attendu YYYY-MM-DD): {raw_ts!r}")
    try:
        ts = iso_date(raw_ts)
    except ValueError:
        raise PriceBarError(f"date invalide (attendu YYYY-MM-DD): {bar.timestamp!r}") from None
    if ts is None:
        raise PriceBarError("date manquante")

    prices = {"open": bar.open, "high": bar.high, "low": bar.low, "close": bar.close}
    for name, value in prices.items():
        if value is None or not math.isfinite(float(value)) or float(value) < 0:
            raise PriceBarError(f"{name} doit être un nombre fini >= 0 (reçu {value!r})")
    if float(bar.high) < float(bar.low):
        raise PriceBarError(f"high < low ({bar.high} < {bar.low})")

    if bar.volume is None or int(bar.volume) != bar.volume or int(bar.volume) < 0:
        raise PriceBarError(f"volume doit être un entier >= 0 (reçu {bar.volume!r})")

    return PriceBar(
        symbol=symbol,
        timestamp=ts,
        open=float(bar.open),
        high=float(bar.high),
        low=float(bar.low),
        close=float(bar.close),
        volume=int(bar.volume),
    )


def record_price_bar(conn: sqlite3.Connection, cache: StatisticsCache, bar: PriceBar) -> PriceBar:
    """Upsert d'une barre validée puis invalidation du cache (échec d'invalidation journalisé seulement)."""
    bar = validate_bar(bar)
    price_store.upsert_bars(conn, [bar])
    on_price_write(cache, bar.symbol, bar.timestamp)
    return bar


class StatisticsEngine:
    """Regroupe connexion + cache injecté pour la couche appelante."""

    def __init__(self, conn: sqlite3.Connection, cache: StatisticsCache) -> None:
        self.conn = conn
        self.cache = cache

    def get_or_compute_statistics(
        self,
        symbols: Sequence[str],
        start: DateLike = None,
        end: DateLike = None,
    ) -> StatisticsResult:
        return get_or_compute_statistics(self.conn, self.cache, symbols, start, end)

    def invalidate(self, symbol: str, ts: DateLike) -> bool:
        return invalidate(self.cache, symbol, ts)

    def record_price_bar(self, bar: PriceBar) -> PriceBar:
        return record_price_bar(self.conn, self.cache, bar)


def backup_db_file(src: Path | None = None) -> Path:
    """Copie la base vers <dossier>/backups/pricestats_YYYYMMDD_HHMMSS.db"""
    src = src if src is not None else get_db_path()
    if not src.exists():
        raise FileNotFoundError(f"Base introuvable: {src}")

    backups_dir = src.parent / "backups"
    backups_dir.mkdir(parents=True, exist_ok=True)

    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    dst = backups_dir / f"pricestats_{stamp}.db"
    shutil.copy2(src, dst)
    return dst
