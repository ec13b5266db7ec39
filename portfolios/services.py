from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from django.conf import settings

from accounts.models import Profile
from leaderboards.services import get_history, get_latest_snapshot

from .metrics import compute_metrics, normalize_series
from .synthesis import UniformSource, synthesize, synthesize_to_target
from .types import PerformanceMetrics, Snapshot


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortfolioPerformance:
    history: list[Snapshot] = field(default_factory=list)
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    synthetic: bool = False


def synthesize_history(
    current_value: float,
    days: int,
    *,
    rng: UniformSource | None = None,
    now: datetime | None = None,
) -> list[Snapshot]:
    """
    Demo history for accounts without enough recorded snapshots.

    Multi-day windows walk from the configured starting balance to the
    current value; intraday windows (or a zero baseline) run free around it.
    """
    baseline = float(settings.PORTFOLIO_BASELINE_VALUE)
    if days > 1 and baseline > 0:
        return synthesize_to_target(baseline, current_value, days, rng=rng, now=now)
    return synthesize(current_value, days, rng=rng, now=now)


def get_performance(
    user_id: int,
    days: int | None = None,
    *,
    rng: UniformSource | None = None,
    now: datetime | None = None,
) -> PortfolioPerformance:
    days = days or settings.PORTFOLIO_HISTORY_DAYS
    history = normalize_series(get_history(user_id, days, now=now))

    if len(history) >= settings.PORTFOLIO_MIN_HISTORY_POINTS:
        return PortfolioPerformance(history=history, metrics=compute_metrics(history))

    # Same resolution as the leaderboard: latest snapshot, else profile balance.
    latest = get_latest_snapshot(user_id)
    if latest is not None:
        current_value = latest.total_value
    else:
        balance = Profile.objects.filter(user_id=user_id).values_list("balance", flat=True).first()
        current_value = float(balance or 0)

    logger.info(
        "User %s has %d snapshot(s) in the last %d day(s); synthesizing history",
        user_id,
        len(history),
        days,
    )
    synthetic = synthesize_history(current_value, days, rng=rng, now=now)
    return PortfolioPerformance(history=synthetic, metrics=compute_metrics(synthetic), synthetic=True)
