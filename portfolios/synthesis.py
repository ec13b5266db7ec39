from __future__ import annotations

import random
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Protocol

from django.utils import timezone

from .exceptions import InvalidInputError
from .types import Snapshot


TWO_PLACES = Decimal("0.01")

FREE_RUNNING_START_RATIO = 0.95
# (market, cash) share of each synthesized value
FREE_RUNNING_SPLIT = (0.8, 0.2)
ANCHORED_SPLIT = (0.9, 0.1)

# Intraday window: 25 hourly points (24h ago .. now).
HOURLY_POINTS = 24
HOURLY_NOISE = 0.005
HOURLY_TREND_RECENT = 0.0002
HOURLY_TREND_EARLY = -0.0001

DAILY_NOISE = 0.02
DAILY_TREND_RECENT = 0.001
DAILY_TREND_EARLY = -0.0005

ANCHORED_NOISE = 0.01


class UniformSource(Protocol):
    def uniform(self, a: float, b: float) -> float: ...


def _round2(value: float) -> float:
    return float(Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def _pct_change(value: float, previous: float | None) -> float:
    if not previous:
        return 0.0
    return (value - previous) / previous * 100


def _point(*, when, value: float, previous: float | None, base: float, split: tuple[float, float]) -> Snapshot:
    total_return = (value - base) / base * 100 if base > 0 else 0.0
    market_ratio, cash_ratio = split
    return Snapshot(
        date=when,
        total_value=_round2(value),
        market_value=_round2(value * market_ratio),
        cash_balance=_round2(value * cash_ratio),
        daily_return=_round2(_pct_change(value, previous)),
        total_return=_round2(total_return),
    )


def synthesize(
    current_value: float,
    days: int,
    *,
    rng: UniformSource | None = None,
    now: datetime | None = None,
) -> list[Snapshot]:
    """
    Generate a free-running demo history ending around `current_value`.

    The walk starts at 95% of the current value. A one-day window produces
    25 hourly points; longer windows produce one point per calendar day.
    Each step multiplies by (1 + noise + trend); the trend is positive over
    the most recent half of the window and slightly negative before it.
    """
    if rng is None:
        rng = random.Random()
    now = now or timezone.now()

    base = current_value * FREE_RUNNING_START_RATIO
    value = base
    history: list[Snapshot] = []

    def _step(when, noise: float, trend: float) -> None:
        nonlocal value
        value = value * (1 + rng.uniform(-noise, noise) + trend)
        previous = history[-1].total_value if history else None
        history.append(
            _point(
                when=when,
                value=value,
                previous=previous,
                base=base,
                split=FREE_RUNNING_SPLIT,
            )
        )

    if days == 1:
        for i in range(HOURLY_POINTS, -1, -1):
            trend = HOURLY_TREND_RECENT if i < HOURLY_POINTS / 2 else HOURLY_TREND_EARLY
            _step(now - timedelta(hours=i), HOURLY_NOISE, trend)
        return history

    today = timezone.localdate(now)
    for i in range(days - 1, -1, -1):
        trend = DAILY_TREND_RECENT if i < days / 2 else DAILY_TREND_EARLY
        _step(today - timedelta(days=i), DAILY_NOISE, trend)
    return history


def synthesize_to_target(
    initial_value: float,
    target_value: float,
    days: int,
    *,
    rng: UniformSource | None = None,
    now: datetime | None = None,
) -> list[Snapshot]:
    """
    Generate a daily history that walks from `initial_value` to `target_value`.

    Each day grows by the constant factor (target / initial) ** (1 / days)
    plus +/-1% noise. The last point is always exactly `target_value`,
    whatever the noise did along the way.
    """
    if initial_value <= 0:
        raise InvalidInputError("initial_value must be > 0 to derive a growth factor.")
    if target_value < 0:
        raise InvalidInputError("target_value must be >= 0.")
    if days < 1:
        raise InvalidInputError("days must be >= 1.")

    if rng is None:
        rng = random.Random()
    now = now or timezone.now()
    today = timezone.localdate(now)

    base_growth = (target_value / initial_value) ** (1 / days) - 1
    value = initial_value
    history: list[Snapshot] = []

    for i in range(days - 1, -1, -1):
        value = value * (1 + base_growth + rng.uniform(-ANCHORED_NOISE, ANCHORED_NOISE))
        if i == 0:
            value = target_value

        previous = history[-1].total_value if history else None
        history.append(
            _point(
                when=today - timedelta(days=i),
                value=value,
                previous=previous,
                base=initial_value,
                split=ANCHORED_SPLIT,
            )
        )

    return history
