# src/pricestats/model/results.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Optional


INSUFFICIENT_DATA_MESSAGE = "Insufficient data (need at least 2 data points)"


@dataclass(frozen=True)
class StockStatistic:
    symbol: str
    mean: Optional[float]
    std_dev: Optional[float]
    coefficient_of_variation: Optional[float]
    beta: Optional[float]
    data_points: int
    message: Optional[str] = None

    @classmethod
    def insufficient(cls, symbol: str, data_points: int = 0) -> "StockStatistic":
        return cls(
            symbol=symbol,
            mean=None,
            std_dev=None,
            coefficient_of_variation=None,
            beta=None,
            data_points=int(data_points),
            message=INSUFFICIENT_DATA_MESSAGE,
        )


@dataclass(frozen=True)
class CorrelationRow:
    symbol: str
    correlations: tuple[Optional[float], ...]


@dataclass(frozen=True)
class StatisticsResult:
    stock_stats: tuple[StockStatistic, ...] = field(default_factory=tuple)
    correlation_matrix: tuple[CorrelationRow, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls) -> "StatisticsResult":
        return cls()

    def stats_payload(self) -> list[dict]:
        return [asdict(s) for s in self.stock_stats]

    def matrix_payload(self) -> list[dict]:
        return [{"symbol": r.symbol, "correlations": list(r.correlations)} for r in self.correlation_matrix]

    def to_dict(self) -> dict:
        """Forme JSON (clés snake_case), celle stockée dans le cache."""
        return {"stock_stats": self.stats_payload(), "correlation_matrix": self.matrix_payload()}

    @classmethod
    def from_payloads(cls, stock_stats: list[dict], correlation_matrix: list[dict]) -> "StatisticsResult":
        return cls(
            stock_stats=tuple(StockStatistic(**s) for s in stock_stats),
            correlation_matrix=tuple(
                CorrelationRow(symbol=r["symbol"], correlations=tuple(r["correlations"]))
                for r in correlation_matrix
            ),
        )

    @classmethod
    def from_dict(cls, data: dict) -> "StatisticsResult":
        return cls.from_payloads(data.get("stock_stats", []), data.get("correlation_matrix", []))
