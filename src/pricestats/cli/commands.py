# src/pricestats/cli/commands.py
from __future__ import annotations

import argparse
import json
from pathlib import Path

import pandas as pd

from pricestats.app.engine import (
    PriceBarError,
    backup_db_file,
    build_cache,
    get_or_compute_statistics,
    record_price_bar,
)
from pricestats.cache.invalidate import on_price_write
from pricestats.market.alphavantage import AlphaVantageError, fetch_daily_bars
from pricestats.market.price_store import PriceBar, get_bars, list_symbols, upsert_bars
from pricestats.storage.db import connect, init_db
from pricestats.storage.repo import get_events, log_event


def _open(args: argparse.Namespace):
    conn = connect(getattr(args, "db", None))
    init_db(conn)
    return conn, build_cache(conn, getattr(args, "cache", None))


def _parse_symbols(raw: str) -> list[str]:
    return [s.strip().upper() for s in raw.split(",") if s.strip()]


def cmd_init_db(args: argparse.Namespace) -> None:
    conn, _ = _open(args)
    conn.close()
    print("Base initialisée.")


def cmd_record(args: argparse.Namespace) -> None:
    conn, cache = _open(args)
    bar = PriceBar(
        symbol=args.symbol,
        timestamp=args.date,
        open=args.open,
        high=args.high,
        low=args.low,
        close=args.close,
        volume=args.volume,
    )
    try:
        bar = record_price_bar(conn, cache, bar)
    except PriceBarError as e:
        raise SystemExit(f"Barre refusée: {e}")

    log_event(conn, "RECORD_BAR", {"symbol": bar.symbol, "ts": bar.timestamp, "close": bar.close})
    print(f"OK: {bar.symbol} {bar.timestamp} close={bar.close} volume={bar.volume}")


def cmd_show_prices(args: argparse.Namespace) -> None:
    conn, _ = _open(args)
    df = get_bars(conn, args.symbol.upper(), args.start, args.end)
    if df.empty:
        print("(vide)")
        return
    print(df.tail(args.limit).to_string(index=False))


def cmd_symbols(args: argparse.Namespace) -> None:
    conn, _ = _open(args)
    symbols = list_symbols(conn)
    print(", ".join(symbols) if symbols else "(aucun symbole)")


def format_stats(stock_stats) -> str:
    df = pd.DataFrame([
        {
            "symbol": s.symbol,
            "n": s.data_points,
            "mean": s.mean,
            "std_dev": s.std_dev,
            "cv": s.coefficient_of_variation,
            "beta": s.beta,
            "message": s.message or "",
        }
        for s in stock_stats
    ])
    return df.to_string(index=False, float_format=lambda v: f"{v:.6f}")


def format_matrix(matrix) -> str:
    symbols = [r.symbol for r in matrix]
    df = pd.DataFrame([list(r.correlations) for r in matrix], index=symbols, columns=symbols)
    return df.to_string(float_format=lambda v: f"{v:.4f}", na_rep="-")


def cmd_stats(args: argparse.Namespace) -> None:
    conn, cache = _open(args)
    symbols = _parse_symbols(args.symbols)
    result = get_or_compute_statistics(conn, cache, symbols, args.start, args.end)

    log_event(conn, "STATS_COMPUTED", {"symbols": symbols, "start": args.start, "end": args.end})

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return
    if not result.stock_stats:
        print("(aucun symbole)")
        return
    print(format_stats(result.stock_stats))
    print()
    print("Corrélations:")
    print(format_matrix(result.correlation_matrix))


def cmd_cache(args: argparse.Namespace) -> None:
    _, cache = _open(args)
    entries = cache.entries()
    if not entries:
        print("(cache vide)")
        return
    for e in entries:
        print(f"{e.key}  fraîcheur={e.freshness_mark}  calculé={e.computed_at}")


def cmd_cache_clear(args: argparse.Namespace) -> None:
    if not args.force:
        print("Refus: ajoute --force pour vider le cache des statistiques (prices conservés).")
        return
    conn, cache = _open(args)
    n = cache.clear()
    log_event(conn, "CACHE_CLEAR", {"deleted": n})
    print(f"OK cache_clear: {n} entrée(s) supprimée(s).")


def cmd_av_daily(args: argparse.Namespace) -> None:
    conn, cache = _open(args)
    try:
        bars = fetch_daily_bars(args.symbol, outputsize=args.outputsize)
    except AlphaVantageError as e:
        raise SystemExit(f"Échec Alpha Vantage (daily): {e}")

    n = upsert_bars(conn, bars)
    for bar in bars:
        on_price_write(cache, bar.symbol, bar.timestamp)

    log_event(conn, "AV_DAILY", {"symbol": args.symbol, "n": n, "outputsize": args.outputsize})
    print(f"OK AV_DAILY: {n} barres insérées pour {args.symbol.upper()}")


def cmd_backup_db(args: argparse.Namespace) -> None:
    path = backup_db_file(Path(args.db) if args.db else None)
    print(f"OK backup: {path}")


def cmd_events(args: argparse.Namespace) -> None:
    conn, _ = _open(args)
    df = get_events(conn, limit=args.limit)
    if df.empty:
        print("(aucun événement)")
        return
    print(df.to_string(index=False))
