# src/pricestats/main.py

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from dotenv import load_dotenv

from pricestats.cli.commands import (
    cmd_av_daily,
    cmd_backup_db,
    cmd_cache,
    cmd_cache_clear,
    cmd_events,
    cmd_init_db,
    cmd_record,
    cmd_show_prices,
    cmd_stats,
    cmd_symbols,
)
from pricestats.log_setup import setup_logging


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pricestats")
    p.add_argument("--db", type=str, default=None, help="chemin SQLite (défaut: PRICESTATS_DB_PATH)")
    p.add_argument("--cache", type=str, choices=["sqlite", "memory"], default=None)
    p.add_argument("--log-level", type=str, default=None)
    p.add_argument("--log-file", type=str, default=None)
    sub = p.add_subparsers(dest="cmd", required=True)

    p_init = sub.add_parser("init_db")
    p_init.set_defaults(func=cmd_init_db)

    p_rec = sub.add_parser("record")
    p_rec.add_argument("--symbol", type=str, required=True)
    p_rec.add_argument("--date", type=str, required=True, help="YYYY-MM-DD")
    p_rec.add_argument("--open", type=float, required=True)
    p_rec.add_argument("--high", type=float, required=True)
    p_rec.add_argument("--low", type=float, required=True)
    p_rec.add_argument("--close", type=float, required=True)
    p_rec.add_argument("--volume", type=int, required=True)
    p_rec.set_defaults(func=cmd_record)

    p_prices = sub.add_parser("prices")
    p_prices.add_argument("--symbol", type=str, required=True)
    p_prices.add_argument("--start", type=str, default=None)
    p_prices.add_argument("--end", type=str, default=None)
    p_prices.add_argument("--limit", type=int, default=10)
    p_prices.set_defaults(func=cmd_show_prices)

    p_sym = sub.add_parser("symbols")
    p_sym.set_defaults(func=cmd_symbols)

    p_stats = sub.add_parser("stats")
    p_stats.add_argument("--symbols", type=str, required=True, help="liste séparée par des virgules")
    p_stats.add_argument("--start", type=str, default=None)
    p_stats.add_argument("--end", type=str, default=None)
    p_stats.add_argument("--json", action="store_true")
    p_stats.set_defaults(func=cmd_stats)

    p_cache = sub.add_parser("cache")
    p_cache.set_defaults(func=cmd_cache)

    p_cc = sub.add_parser("cache_clear")
    p_cc.add_argument("--force", action="store_true")
    p_cc.set_defaults(func=cmd_cache_clear)

    p_avd = sub.add_parser("av_daily")
    p_avd.add_argument("--symbol", type=str, required=True)
    p_avd.add_argument("--outputsize", type=str, choices=["compact", "full"], default="compact")
    p_avd.set_defaults(func=cmd_av_daily)

    p_bk = sub.add_parser("backup_db")
    p_bk.set_defaults(func=cmd_backup_db)

    p_ev = sub.add_parser("events")
    p_ev.add_argument("--limit", type=int, default=20)
    p_ev.set_defaults(func=cmd_events)

    return p


def main(argv: Optional[Sequence[str]] = None) -> None:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_file, args.log_level)
    args.func(args)


if __name__ == "__main__":
    main()
