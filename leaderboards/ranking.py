from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass, field, replace

from portfolios.exceptions import InvalidInputError
from portfolios.types import Snapshot


@dataclass(frozen=True)
class AccountSummary:
    user_id: Hashable
    display_label: str
    balance: float | None = None


@dataclass(frozen=True)
class LeaderboardEntry:
    user_id: Hashable
    display_label: str
    total_value: float
    daily_return: float
    total_return: float
    rank: int = 0

    def as_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "display_label": self.display_label,
            "total_value": self.total_value,
            "daily_return": self.daily_return,
            "total_return": self.total_return,
            "rank": self.rank,
        }


@dataclass(frozen=True)
class LeaderboardViews:
    """
    The canonical ranking plus display-only orderings of the same entries.

    Only `all_time` ranks identify a user's position; the other views carry
    their own ranks on copies.
    """

    all_time: list[LeaderboardEntry] = field(default_factory=list)
    daily: list[LeaderboardEntry] = field(default_factory=list)
    total_return: list[LeaderboardEntry] = field(default_factory=list)

    def entry_for(self, user_id) -> LeaderboardEntry | None:
        for entry in self.all_time:
            if entry.user_id == user_id:
                return entry
        return None


def _ranked(entries: Iterable[LeaderboardEntry], key) -> list[LeaderboardEntry]:
    # sorted() is stable, so equal keys keep their incoming order.
    ordered = sorted(entries, key=key, reverse=True)
    return [replace(entry, rank=idx) for idx, entry in enumerate(ordered, start=1)]


def build_leaderboard(
    accounts: Iterable[AccountSummary],
    latest_snapshot_by_user: Mapping[Hashable, Snapshot],
    baseline_value: float,
) -> list[LeaderboardEntry]:
    """
    Rank every account by current total value (descending).

    Value comes from the latest snapshot when one exists, else the account
    balance, else 0. Total return is measured against one shared baseline so
    accounts that joined at different times stay comparable.
    """
    if baseline_value is None or baseline_value <= 0:
        raise InvalidInputError("baseline_value must be > 0.")

    entries = []
    for account in accounts:
        snapshot = latest_snapshot_by_user.get(account.user_id)
        if snapshot is not None:
            total_value = snapshot.total_value
            daily_return = snapshot.daily_return
        else:
            total_value = account.balance or 0.0
            daily_return = 0.0

        entries.append(
            LeaderboardEntry(
                user_id=account.user_id,
                display_label=account.display_label,
                total_value=total_value,
                daily_return=daily_return,
                total_return=(total_value - baseline_value) / baseline_value * 100,
            )
        )

    return _ranked(entries, key=lambda e: e.total_value)


def daily_view(entries: Iterable[LeaderboardEntry]) -> list[LeaderboardEntry]:
    return _ranked(entries, key=lambda e: e.daily_return)


def total_return_view(entries: Iterable[LeaderboardEntry]) -> list[LeaderboardEntry]:
    return _ranked(entries, key=lambda e: e.total_return)


def build_leaderboard_views(
    accounts: Iterable[AccountSummary],
    latest_snapshot_by_user: Mapping[Hashable, Snapshot],
    baseline_value: float,
) -> LeaderboardViews:
    all_time = build_leaderboard(accounts, latest_snapshot_by_user, baseline_value)
    return LeaderboardViews(
        all_time=all_time,
        daily=daily_view(all_time),
        total_return=total_return_view(all_time),
    )
