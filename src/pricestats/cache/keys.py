# src/pricestats/cache/keys.py
from __future__ import annotations

from typing import Iterable

from pricestats.market.price_store import DateLike, iso_date


UNBOUNDED = "null"


def canonical_symbols(symbols: Iterable[str]) -> list[str]:
    """Symboles dédoublonnés et triés : l'ordre d'entrée n'influence pas la clé."""
    return sorted(set(symbols))


def canonical_key(symbols: Iterable[str], start: DateLike = None, end: DateLike = None) -> str:
    """
    Clé de cache : "AAA,BBB|2024-01-01|null".
    La virgule n'apparaît jamais dans un symbole.
    """
    start_s = iso_date(start) or UNBOUNDED
    end_s = iso_date(end) or UNBOUNDED
    return f"{','.join(canonical_symbols(symbols))}|{start_s}|{end_s}"
