# src/pricestats/cache/store.py
"""
Cache des statistiques calculées, indexé par clé canonique.

Une entrée est servie si sa marque de fraîcheur est égale au dernier ts
actuellement présent pour la même requête, ou si ce ts n'existe plus (None).
Pas de TTL : seules les écritures de prix invalident (voir cache.invalidate).
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from pricestats.cache import freshness
from pricestats.cache.keys import canonical_key, canonical_symbols
from pricestats.market.price_store import DateLike, iso_date
from pricestats.model.results import StatisticsResult
from pricestats.storage.repo import utc_now_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    symbols: tuple[str, ...]
    start_date: Optional[str]
    end_date: Optional[str]
    result: StatisticsResult
    freshness_mark: Optional[str]
    computed_at: str

    def is_stale_for(self, symbol: str, ts: Optional[str]) -> bool:
        """Vrai si une nouvelle barre (symbol, ts) rend cette entrée obsolète."""
        # sans date, comme en SQL (comparaison à NULL) : rien n'est obsolète
        if ts is None or symbol not in self.symbols:
            return False
        if self.end_date is not None and ts > self.end_date:
            return False
        return self.freshness_mark is None or self.freshness_mark < ts


class StatisticsCache(ABC):
    """
    Contrat commun des caches. Les sous-classes fournissent le stockage
    (_fetch / _upsert / invalidate / entries / clear) ; la logique de validité
    est ici.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        # connexion vers la série de prix, pour la marque de fraîcheur
        self._conn = conn

    def get(
        self,
        symbols: Sequence[str],
        start: DateLike = None,
        end: DateLike = None,
    ) -> Optional[StatisticsResult]:
        if not symbols:
            return StatisticsResult.empty()

        key = canonical_key(symbols, start, end)
        entry = self._fetch(key)
        if entry is None:
            logger.debug("cache miss %s", key)
            return None

        current = freshness.latest_timestamp(self._conn, symbols, start, end)
        if current is None:
            logger.debug("cache hit %s (plus aucune donnée, entrée servie telle quelle)", key)
            return entry.result
        if current == entry.freshness_mark:
            logger.debug("cache hit %s (fraîcheur %s)", key, current)
            return entry.result

        logger.debug("cache stale %s (stocké %s, actuel %s)", key, entry.freshness_mark, current)
        return None

    def put(
        self,
        symbols: Sequence[str],
        start: DateLike,
        end: DateLike,
        result: StatisticsResult,
        freshness_mark: Optional[str] = None,
    ) -> Optional[CacheEntry]:
        """
        Stocke le résultat ; retourne None (rien stocké) si aucune donnée ne le fonde.
        freshness_mark : marque lue avant le calcul du résultat ; lue ici à défaut.
        """
        if not symbols:
            return None

        mark = freshness_mark
        if mark is None:
            mark = freshness.latest_timestamp(self._conn, symbols, start, end)
        key = canonical_key(symbols, start, end)
        if mark is None:
            logger.debug("cache skip %s (aucune donnée)", key)
            return None

        entry = CacheEntry(
            key=key,
            symbols=tuple(canonical_symbols(symbols)),
            start_date=iso_date(start),
            end_date=iso_date(end),
            result=result,
            freshness_mark=mark,
            computed_at=utc_now_iso(),
        )
        self._upsert(entry)
        logger.debug("cache store %s (fraîcheur %s)", key, mark)
        return entry

    @abstractmethod
    def _fetch(self, key: str) -> Optional[CacheEntry]: ...

    @abstractmethod
    def _upsert(self, entry: CacheEntry) -> None: ...

    @abstractmethod
    def invalidate(self, symbol: str, ts: DateLike) -> int:
        """Supprime les entrées rendues obsolètes par la barre (symbol, ts) ; retourne leur nombre."""

    @abstractmethod
    def entries(self) -> list[CacheEntry]: ...

    @abstractmethod
    def clear(self) -> int: ...


class SQLiteStatisticsCache(StatisticsCache):
    """Cache persistant dans la table statistics_cache (même base que les prix ou non)."""

    def __init__(self, conn: sqlite3.Connection, cache_conn: sqlite3.Connection | None = None) -> None:
        super().__init__(conn)
        self._cache_conn = cache_conn if cache_conn is not None else conn

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> CacheEntry:
        return CacheEntry(
            key=row["cache_key"],
            symbols=tuple(json.loads(row["symbols"])),
            start_date=row["start_date"],
            end_date=row["end_date"],
            result=StatisticsResult.from_payloads(
                json.loads(row["stock_stats"]),
                json.loads(row["correlation_matrix"]),
            ),
            freshness_mark=row["latest_data_ts"],
            computed_at=row["computed_at"],
        )

    def _fetch(self, key: str) -> Optional[CacheEntry]:
        row = self._cache_conn.execute(
            "SELECT * FROM statistics_cache WHERE cache_key = ?",
            (key,),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_entry(row)

    def _upsert(self, entry: CacheEntry) -> None:
        self._cache_conn.execute(
            """
            INSERT INTO statistics_cache (
              cache_key, symbols, start_date, end_date,
              stock_stats, correlation_matrix, latest_data_ts, computed_at
            )
            VALUES (
              :cache_key, :symbols, :start_date, :end_date,
              :stock_stats, :correlation_matrix, :latest_data_ts, :computed_at
            )
            ON CONFLICT(cache_key) DO UPDATE SET
              symbols=excluded.symbols,
              start_date=excluded.start_date,
              end_date=excluded.end_date,
              stock_stats=excluded.stock_stats,
              correlation_matrix=excluded.correlation_matrix,
              latest_data_ts=excluded.latest_data_ts,
              computed_at=excluded.computed_at
            """,
            {
                "cache_key": entry.key,
                "symbols": json.dumps(list(entry.symbols)),
                "start_date": entry.start_date,
                "end_date": entry.end_date,
                "stock_stats": json.dumps(entry.result.stats_payload()),
                "correlation_matrix": json.dumps(entry.result.matrix_payload()),
                "latest_data_ts": entry.freshness_mark,
                "computed_at": entry.computed_at,
            },
        )
        self._cache_conn.commit()

    def invalidate(self, symbol: str, ts: DateLike) -> int:
        cur = self._cache_conn.execute(
            """
            DELETE FROM statistics_cache
            WHERE EXISTS (
                    SELECT 1 FROM json_each(statistics_cache.symbols)
                    WHERE json_each.value = :symbol
                  )
              AND (end_date IS NULL OR :ts <= end_date)
              AND (latest_data_ts IS NULL OR latest_data_ts < :ts)
            """,
            {"symbol": symbol, "ts": iso_date(ts)},
        )
        self._cache_conn.commit()
        return int(cur.rowcount)

    def entries(self) -> list[CacheEntry]:
        rows = self._cache_conn.execute(
            "SELECT * FROM statistics_cache ORDER BY computed_at DESC, cache_key ASC"
        ).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def clear(self) -> int:
        cur = self._cache_conn.execute("DELETE FROM statistics_cache;")
        self._cache_conn.commit()
        return int(cur.rowcount)


class InMemoryStatisticsCache(StatisticsCache):
    """Cache en mémoire (tests, processus courts). Les mutations sont sérialisées par un verrou."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn)
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def _fetch(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def _upsert(self, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[entry.key] = entry

    def invalidate(self, symbol: str, ts: DateLike) -> int:
        ts_s = iso_date(ts)
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.is_stale_for(symbol, ts_s)]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def entries(self) -> list[CacheEntry]:
        with self._lock:
            return list(self._entries.values())

    def clear(self) -> int:
        with self._lock:
            n = len(self._entries)
            self._entries.clear()
        return n
