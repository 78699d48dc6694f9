# src/pricestats/model/estimate.py
from __future__ import annotations

from typing import Optional

import numpy as np
import pandas as pd


MIN_OBSERVATIONS = 2


def _as_array(values) -> np.ndarray:
    return pd.Series(values, dtype=float).to_numpy()


def coefficient_of_variation(mean: float, std_dev: float) -> Optional[float]:
    """std / mean ; None si la moyenne est nulle."""
    if mean == 0:
        return None
    return float(std_dev) / float(mean)


def population_beta(stock_closes, market_closes) -> Optional[float]:
    """
    beta = Cov_pop(stock, market) / Var_pop(market)
    Les deux séries doivent déjà être alignées (même ts, même ordre).
    None si moins de 2 paires ou variance du marché nulle.
    """
    s = _as_array(stock_closes)
    m = _as_array(market_closes)
    if s.shape[0] != m.shape[0]:
        raise ValueError("séries non alignées (longueurs différentes)")
    if s.shape[0] < MIN_OBSERVATIONS:
        return None

    var_m = float(np.var(m))  # ddof=0
    if var_m == 0.0:
        return None
    cov = float(np.mean((s - s.mean()) * (m - m.mean())))
    return cov / var_m


def pearson_correlation(x, y) -> Optional[float]:
    """
    Corrélation de Pearson sur des séries alignées.
    None si moins de 2 paires ou si l'une des séries est constante.
    """
    a = _as_array(x)
    b = _as_array(y)
    if a.shape[0] != b.shape[0]:
        raise ValueError("séries non alignées (longueurs différentes)")
    if a.shape[0] < MIN_OBSERVATIONS:
        return None

    da = a - a.mean()
    db = b - b.mean()
    denom = float(np.sqrt(np.sum(da * da) * np.sum(db * db)))
    if denom == 0.0:
        return None
    r = float(np.sum(da * db)) / denom
    # bruit flottant : on reste dans [-1, 1]
    return float(np.clip(r, -1.0, 1.0))
