from __future__ import annotations

from datetime import datetime, time
from math import sqrt

from .types import PerformanceMetrics, Snapshot


def _sort_key(snapshot: Snapshot) -> datetime:
    d = snapshot.date
    if isinstance(d, datetime):
        return d
    return datetime.combine(d, time.min)


def normalize_series(series: list[Snapshot]) -> list[Snapshot]:
    """Return a new list ordered oldest -> newest (stable for equal dates)."""
    return sorted(series, key=_sort_key)


def _max_drawdown(values: list[float]) -> float:
    max_drawdown = 0.0
    peak = values[0]
    for value in values:
        if value > peak:
            peak = value
        drawdown = (peak - value) / peak * 100 if peak > 0 else 0.0
        if drawdown > max_drawdown:
            max_drawdown = drawdown
    return max_drawdown


def compute_metrics(series: list[Snapshot]) -> PerformanceMetrics:
    """
    Summarize a chronologically ordered snapshot series.

    - total_return: first -> last value, in percent (0 when the first value is 0)
    - daily_return: the newest snapshot's own daily_return
    - volatility: population std-dev of every daily_return in the series
    - max_drawdown: largest decline from the running peak, in percent
    - sharpe_ratio: mean daily_return / volatility (risk-free rate 0, not annualized)

    Empty and single-point series yield all zeros.
    """
    if len(series) < 2:
        return PerformanceMetrics()

    values = [s.total_value for s in series]
    returns = [s.daily_return for s in series]

    first, last = values[0], values[-1]
    total_return = (last - first) / first * 100 if first else 0.0

    mean_return = sum(returns) / len(returns)
    variance = sum((r - mean_return) ** 2 for r in returns) / len(returns)
    volatility = sqrt(variance)

    sharpe_ratio = mean_return / volatility if volatility > 0 else 0.0

    return PerformanceMetrics(
        total_return=total_return,
        daily_return=returns[-1],
        volatility=volatility,
        max_drawdown=_max_drawdown(values),
        sharpe_ratio=sharpe_ratio,
    )
