from __future__ import annotations

import os

import requests

from pricestats.market.price_store import PriceBar, iso_date


BASE_URL = "https://www.alphavantage.co/query"

# clés renvoyées par l'API à la place des données (erreur, quota, premium)
_ERROR_KEYS = ("Error Message", "Note", "Information", "Message")


class AlphaVantageError(RuntimeError):
    pass


def _api_key() -> str:
    key = os.getenv("ALPHAVANTAGE_API_KEY")
    if not key:
        raise AlphaVantageError("ALPHAVANTAGE_API_KEY manquante (mets-la dans .env).")
    return key


def _get_json(params: dict) -> dict:
    r = requests.get(BASE_URL, params=params, timeout=30)
    r.raise_for_status()
    data = r.json()
    if not isinstance(data, dict):
        raise AlphaVantageError(f"Réponse inattendue: {type(data).__name__}")
    for k in _ERROR_KEYS:
        if k in data:
            raise AlphaVantageError(data[k])
    return data


def fetch_daily_bars(symbol: str, outputsize: str = "compact") -> list[PriceBar]:
    """
    TIME_SERIES_DAILY -> liste de PriceBar triée par date croissante.
    outputsize: compact (≈100 derniers) ou full.
    """
    symbol = symbol.strip().upper()
    params = {
        "function": "TIME_SERIES_DAILY",
        "symbol": symbol,
        "outputsize": outputsize,
        "apikey": _api_key(),
    }
    data = _get_json(params)

    series = data.get("Time Series (Daily)")
    if not series:
        raise AlphaVantageError("Réponse inattendue: pas de 'Time Series (Daily)'.")

    bars = []
    for day, fields in series.items():
        bars.append(PriceBar(
            symbol=symbol,
            timestamp=iso_date(day),
            open=float(fields["1. open"]),
            high=float(fields["2. high"]),
            low=float(fields["3. low"]),
            close=float(fields["4. close"]),
            volume=int(float(fields["5. volume"])),
        ))

    bars.sort(key=lambda b: b.timestamp)
    return bars
