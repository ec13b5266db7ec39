from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import OuterRef, Subquery, Value
from django.db.models.functions import Coalesce, NullIf
from django.utils import timezone

from accounts.models import Profile
from leaderboards.models import PortfolioSnapshot, Timeframe
from leaderboards.ranking import AccountSummary, LeaderboardViews, build_leaderboard_views
from portfolios.exceptions import SnapshotStoreError
from portfolios.models import Position
from portfolios.types import Snapshot


logger = logging.getLogger(__name__)

MONEY_QUANT = Decimal("0.01")
RETURN_QUANT = Decimal("0.000001")


@dataclass(frozen=True)
class SnapshotValues:
    cash_balance: Decimal
    market_value: Decimal
    total_value: Decimal


def _quantize_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def _pct_change(value: Decimal, reference: Decimal | None) -> Decimal:
    if not reference:
        return Decimal("0")
    return ((value - reference) / reference * Decimal("100")).quantize(
        RETURN_QUANT, rounding=ROUND_HALF_UP
    )


def snapshot_from_row(row: PortfolioSnapshot) -> Snapshot:
    return Snapshot(
        date=row.created_at,
        total_value=float(row.total_value),
        market_value=float(row.market_value),
        cash_balance=float(row.cash_balance),
        daily_return=float(row.daily_return),
        total_return=float(row.total_return),
    )


def compute_snapshot_values(*, user_id: int) -> SnapshotValues:
    """
    Value an account as profile cash + positions at their last known price.

    Positions without a price are skipped rather than valued at cost.
    Raises Profile.DoesNotExist for users without a profile.
    """
    profile = Profile.objects.get(user_id=user_id)

    market_value = Decimal("0.00")
    positions = Position.objects.filter(user_id=user_id, shares__gt=0).only("shares", "last_price")
    for pos in positions:
        value = pos.market_value
        if value is None:
            continue
        market_value += value

    cash_balance = _quantize_money(profile.balance)
    market_value = _quantize_money(market_value)
    return SnapshotValues(
        cash_balance=cash_balance,
        market_value=market_value,
        total_value=cash_balance + market_value,
    )


def record_snapshot(user_id: int, *, as_of: datetime | None = None) -> PortfolioSnapshot:
    """
    Append one snapshot row for the user.

    daily_return is measured against the user's previous snapshot and
    total_return against the user's first one (both 0 when absent).
    """
    as_of = as_of or timezone.now()
    try:
        with transaction.atomic():
            values = compute_snapshot_values(user_id=user_id)
            history = PortfolioSnapshot.objects.filter(user_id=user_id, created_at__lte=as_of)
            previous = history.order_by("-created_at", "-id").only("total_value").first()
            first = history.order_by("created_at", "id").only("total_value").first()

            snapshot = PortfolioSnapshot.objects.create(
                user_id=user_id,
                created_at=as_of,
                cash_balance=values.cash_balance,
                market_value=values.market_value,
                total_value=values.total_value,
                daily_return=_pct_change(values.total_value, previous.total_value if previous else None),
                total_return=_pct_change(values.total_value, first.total_value if first else None),
            )
    except Profile.DoesNotExist as exc:
        raise SnapshotStoreError(
            f"Failed to record portfolio snapshot: user {user_id} has no profile."
        ) from exc
    except DatabaseError as exc:
        logger.exception("Recording portfolio snapshot failed for user %s", user_id)
        raise SnapshotStoreError(f"Failed to record portfolio snapshot: {exc}") from exc

    logger.info("Recorded portfolio snapshot for user %s: total_value=%s", user_id, snapshot.total_value)
    return snapshot


def get_history(user_id: int, days: int = 30, *, now: datetime | None = None) -> list[Snapshot]:
    """Snapshots from the last `days` days, oldest first. No rows is an empty list."""
    since = (now or timezone.now()) - timedelta(days=days)
    try:
        rows = list(
            PortfolioSnapshot.objects.filter(user_id=user_id, created_at__gte=since).order_by(
                "created_at", "id"
            )
        )
    except DatabaseError as exc:
        logger.exception("Fetching portfolio history failed for user %s", user_id)
        raise SnapshotStoreError(f"Failed to fetch portfolio history: {exc}") from exc
    return [snapshot_from_row(row) for row in rows]


def get_latest_snapshot(user_id: int) -> Snapshot | None:
    """Newest recorded snapshot, or None when the user has none yet."""
    try:
        row = PortfolioSnapshot.objects.filter(user_id=user_id).order_by("-created_at", "-id").first()
    except DatabaseError as exc:
        logger.exception("Fetching latest portfolio value failed for user %s", user_id)
        raise SnapshotStoreError(f"Failed to fetch latest portfolio value: {exc}") from exc
    return snapshot_from_row(row) if row is not None else None


def get_latest_value(user_id: int) -> float:
    """Latest recorded total value, or 0 when the user has no snapshot yet."""
    latest = get_latest_snapshot(user_id)
    return latest.total_value if latest is not None else 0.0


def account_roster() -> list[AccountSummary]:
    """All profiles as ranking input, ordered by display label."""
    try:
        profiles = list(
            Profile.objects.select_related("user").order_by(
                Coalesce(NullIf("user__email", Value("")), "user__username"), "user_id"
            )
        )
    except DatabaseError as exc:
        logger.exception("Fetching profiles failed")
        raise SnapshotStoreError(f"Failed to fetch profiles: {exc}") from exc
    return [
        AccountSummary(user_id=p.user_id, display_label=p.display_label, balance=float(p.balance))
        for p in profiles
    ]


def _one_month_before(moment: datetime) -> datetime:
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def window_start(timeframe: str, now: datetime) -> datetime | None:
    if timeframe == Timeframe.DAILY:
        return now - timedelta(days=1)
    if timeframe == Timeframe.WEEKLY:
        return now - timedelta(days=7)
    if timeframe == Timeframe.MONTHLY:
        return _one_month_before(now)
    return None


def latest_snapshots_by_user(*, since: datetime | None = None) -> dict[int, Snapshot]:
    """Newest snapshot per user, optionally only among rows created at/after `since`."""
    try:
        window = PortfolioSnapshot.objects.all()
        if since is not None:
            window = window.filter(created_at__gte=since)
        # One row per user, picked through the (user, -created_at) index.
        newest = window.filter(user_id=OuterRef("user_id")).order_by("-created_at", "-id").values("pk")[:1]
        rows = list(window.filter(pk=Subquery(newest)))
    except DatabaseError as exc:
        logger.exception("Fetching portfolio snapshots failed")
        raise SnapshotStoreError(f"Failed to fetch portfolio history: {exc}") from exc
    return {row.user_id: snapshot_from_row(row) for row in rows}


def compute_leaderboard(
    *, timeframe: str = Timeframe.ALL, now: datetime | None = None
) -> LeaderboardViews:
    """Rebuild the full leaderboard from the store. Nothing is cached between calls."""
    now = now or timezone.now()
    accounts = account_roster()
    if not accounts:
        return LeaderboardViews()

    latest = latest_snapshots_by_user(since=window_start(timeframe, now))
    views = build_leaderboard_views(
        accounts, latest, float(settings.PORTFOLIO_BASELINE_VALUE)
    )
    logger.info("Computed %s leaderboard with %d entries", timeframe, len(views.all_time))
    return views
