from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class Snapshot:
    """
    One point in an account's value history.

    `date` is a datetime for intraday series and a plain date for daily ones.
    Returns are percentages.
    """

    date: date | datetime
    total_value: float
    market_value: float = 0.0
    cash_balance: float = 0.0
    daily_return: float = 0.0
    total_return: float = 0.0


@dataclass(frozen=True)
class PerformanceMetrics:
    total_return: float = 0.0
    daily_return: float = 0.0
    volatility: float = 0.0
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0

    def as_dict(self) -> dict:
        return {
            "total_return": self.total_return,
            "daily_return": self.daily_return,
            "volatility": self.volatility,
            "max_drawdown": self.max_drawdown,
            "sharpe_ratio": self.sharpe_ratio,
        }
