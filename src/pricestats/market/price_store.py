# src/pricestats/market/price_store.py
"""
Série de prix OHLCV (table `stocks`), append-only avec upsert par (symbol, ts).

Toutes les bornes de dates sont optionnelles et inclusives :
  ts >= start si start fourni
  ts <= end   si end fourni
Les listes de symboles passent par json_each(?) : un seul paramètre, pas de
SQL assemblé à la volée.
"""
from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional, Sequence, Union

import pandas as pd


DateLike = Union[date, str, None]

MOMENT_COLUMNS = ["symbol", "data_points", "mean", "std_dev"]

_RANGE_SQL = "(:start IS NULL OR {col} >= :start) AND (:end IS NULL OR {col} <= :end)"


@dataclass(frozen=True)
class PriceBar:
    symbol: str
    timestamp: str  # 'YYYY-MM-DD'
    open: float
    high: float
    low: float
    close: float
    volume: int


def iso_date(value: DateLike) -> Optional[str]:
    """Normalise une date (date, datetime ou chaîne ISO) en 'YYYY-MM-DD'; None reste None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    s = str(value).strip()
    if not s:
        return None
    # lève ValueError si le format est invalide
    return date.fromisoformat(s[:10]).isoformat()


def _range_params(start: DateLike, end: DateLike) -> dict:
    return {"start": iso_date(start), "end": iso_date(end)}


def upsert_bars(conn: sqlite3.Connection, bars: Iterable[PriceBar]) -> int:
    """
    Insère des barres OHLCV.
    Si (symbol, ts) existe déjà, les valeurs OHLCV sont remplacées (upsert).
    Retourne le nombre de barres écrites.
    """
    bars = list(bars)
    if not bars:
        return 0

    conn.executemany(
        """
        INSERT INTO stocks(symbol, ts, open, high, low, close, volume)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(symbol, ts) DO UPDATE SET
          open=excluded.open,
          high=excluded.high,
          low=excluded.low,
          close=excluded.close,
          volume=excluded.volume
        """,
        [
            (b.symbol, b.timestamp, float(b.open), float(b.high), float(b.low), float(b.close), int(b.volume))
            for b in bars
        ],
    )
    conn.commit()
    return len(bars)


def get_bars(
    conn: sqlite3.Connection,
    symbol: str,
    start: DateLike = None,
    end: DateLike = None,
) -> pd.DataFrame:
    """Barres d'un symbole (ts, open, high, low, close, volume), triées par ts croissant."""
    q = f"""
      SELECT ts, open, high, low, close, volume
      FROM stocks
      WHERE symbol = :symbol
        AND {_RANGE_SQL.format(col="ts")}
      ORDER BY ts ASC
    """
    return pd.read_sql_query(q, conn, params={"symbol": symbol, **_range_params(start, end)})


def list_symbols(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute("SELECT DISTINCT symbol FROM stocks ORDER BY symbol;").fetchall()
    return [r["symbol"] for r in rows]


def get_latest_timestamp(
    conn: sqlite3.Connection,
    symbols: Sequence[str],
    start: DateLike = None,
    end: DateLike = None,
) -> Optional[str]:
    """Plus grand ts parmi les barres des symboles dans la plage, ou None."""
    if not symbols:
        return None
    row = conn.execute(
        f"""
        SELECT MAX(ts) AS latest
        FROM stocks
        WHERE symbol IN (SELECT value FROM json_each(:symbols))
          AND {_RANGE_SQL.format(col="ts")}
        """,
        {"symbols": json.dumps(list(symbols)), **_range_params(start, end)},
    ).fetchone()
    return row["latest"] if row is not None else None


def get_close_moments(
    conn: sqlite3.Connection,
    symbols: Sequence[str],
    start: DateLike = None,
    end: DateLike = None,
) -> pd.DataFrame:
    """
    Par symbole présent dans la plage : nombre de barres, moyenne et écart-type
    population (ddof=0) du close. Colonnes MOMENT_COLUMNS, triées par symbole.
    Les symboles avec moins de 2 barres sont inclus (le filtre est laissé à l'appelant).
    """
    if not symbols:
        return pd.DataFrame(columns=MOMENT_COLUMNS)

    q = f"""
      SELECT symbol, close
      FROM stocks
      WHERE symbol IN (SELECT value FROM json_each(:symbols))
        AND {_RANGE_SQL.format(col="ts")}
      ORDER BY symbol ASC, ts ASC
    """
    df = pd.read_sql_query(q, conn, params={"symbols": json.dumps(list(symbols)), **_range_params(start, end)})
    if df.empty:
        return pd.DataFrame(columns=MOMENT_COLUMNS)

    g = df.groupby("symbol", sort=True)["close"]
    out = pd.DataFrame({
        "data_points": g.size().astype(int),
        "mean": g.mean().astype(float),
        "std_dev": g.std(ddof=0).astype(float),
    })
    out.index.name = "symbol"
    return out.reset_index()[MOMENT_COLUMNS]


def get_aligned_closes(
    conn: sqlite3.Connection,
    symbol_a: str,
    symbol_b: str,
    start: DateLike = None,
    end: DateLike = None,
) -> pd.DataFrame:
    """Paires (close_a, close_b) aux dates communes aux deux symboles, triées par ts."""
    q = f"""
      SELECT a.ts AS ts, a.close AS close_a, b.close AS close_b
      FROM stocks a
      JOIN stocks b ON b.ts = a.ts
      WHERE a.symbol = :symbol_a
        AND b.symbol = :symbol_b
        AND {_RANGE_SQL.format(col="a.ts")}
      ORDER BY a.ts ASC
    """
    params = {"symbol_a": symbol_a, "symbol_b": symbol_b, **_range_params(start, end)}
    return pd.read_sql_query(q, conn, params=params)


def get_market_aligned_closes(
    conn: sqlite3.Connection,
    symbol: str,
    start: DateLike = None,
    end: DateLike = None,
) -> pd.DataFrame:
    """
    Close du symbole aligné sur un "marché" synthétique : moyenne des close de
    TOUS les symboles de la table aux dates où le symbole a une barre.
    Colonnes: ts, stock_close, market_close.
    """
    q = f"""
      SELECT s.ts AS ts, s.close AS stock_close, AVG(m.close) AS market_close
      FROM stocks s
      JOIN stocks m ON m.ts = s.ts
      WHERE s.symbol = :symbol
        AND {_RANGE_SQL.format(col="s.ts")}
      GROUP BY s.ts, s.close
      ORDER BY s.ts ASC
    """
    return pd.read_sql_query(q, conn, params={"symbol": symbol, **_range_params(start, end)})
