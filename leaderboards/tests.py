from __future__ import annotations

import random
from datetime import datetime, timedelta
from datetime import timezone as py_timezone
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import DatabaseError
from django.test import Client, SimpleTestCase, TestCase
from django.urls import reverse
from django.utils import timezone

from accounts.models import Profile
from portfolios.exceptions import InvalidInputError, SnapshotStoreError
from portfolios.models import Position
from portfolios.types import Snapshot

from .models import PortfolioSnapshot, Timeframe
from .ranking import (
    AccountSummary,
    build_leaderboard,
    build_leaderboard_views,
    daily_view,
    total_return_view,
)
from .services import (
    account_roster,
    compute_leaderboard,
    get_history,
    get_latest_value,
    latest_snapshots_by_user,
    record_snapshot,
    window_start,
)


def _snap(total_value, daily_return=0.0):
    return Snapshot(date=datetime(2024, 3, 22, tzinfo=py_timezone.utc), total_value=total_value, daily_return=daily_return)


class RankingEngineTests(SimpleTestCase):
    def setUp(self):
        self.accounts = [
            AccountSummary(user_id="A", display_label="a@example.com", balance=10000),
            AccountSummary(user_id="B", display_label="b@example.com", balance=10000),
            AccountSummary(user_id="C", display_label="c@example.com", balance=10000),
        ]
        self.latest = {
            "A": _snap(12000),
            "B": _snap(9000, 5),
            "C": _snap(15000, -2),
        }

    def test_all_time_view_ranks_by_total_value(self):
        entries = build_leaderboard(self.accounts, self.latest, 10000)

        self.assertEqual([e.user_id for e in entries], ["C", "A", "B"])
        self.assertEqual([e.rank for e in entries], [1, 2, 3])
        self.assertEqual([e.total_return for e in entries], [50.0, 20.0, -10.0])

    def test_daily_view_has_independent_ranks(self):
        views = build_leaderboard_views(self.accounts, self.latest, 10000)

        self.assertEqual([e.user_id for e in views.daily], ["B", "A", "C"])
        self.assertEqual([e.rank for e in views.daily], [1, 2, 3])
        # The canonical ranks are untouched by the daily ordering.
        self.assertEqual(views.entry_for("B").rank, 3)
        self.assertEqual(views.entry_for("C").rank, 1)

    def test_total_return_view(self):
        views = build_leaderboard_views(self.accounts, self.latest, 10000)
        self.assertEqual([e.user_id for e in views.total_return], ["C", "A", "B"])
        self.assertEqual([e.rank for e in views.total_return], [1, 2, 3])

    def test_missing_snapshot_falls_back_to_balance_then_zero(self):
        accounts = [
            AccountSummary(user_id=1, display_label="x", balance=8000),
            AccountSummary(user_id=2, display_label="y", balance=None),
        ]
        entries = build_leaderboard(accounts, {}, 10000)

        self.assertEqual([(e.user_id, e.total_value) for e in entries], [(1, 8000), (2, 0.0)])
        self.assertEqual(entries[0].daily_return, 0)
        self.assertEqual(entries[1].total_return, -100.0)

    def test_snapshot_value_wins_over_balance(self):
        accounts = [AccountSummary(user_id=1, display_label="x", balance=8000)]
        entries = build_leaderboard(accounts, {1: _snap(0.0)}, 10000)
        self.assertEqual(entries[0].total_value, 0.0)

    def test_ties_keep_input_order(self):
        accounts = [AccountSummary(user_id=i, display_label=str(i), balance=10000) for i in range(5)]
        entries = build_leaderboard(accounts, {}, 10000)
        self.assertEqual([e.user_id for e in entries], [0, 1, 2, 3, 4])
        self.assertEqual([e.user_id for e in daily_view(entries)], [0, 1, 2, 3, 4])

    def test_ranks_are_a_bijection(self):
        rng = random.Random(11)
        for size in (1, 2, 7, 40):
            accounts = [
                AccountSummary(user_id=i, display_label=str(i), balance=rng.choice([None, 5000, 10000]))
                for i in range(size)
            ]
            latest = {
                i: _snap(rng.choice([9000.0, 10000.0, rng.uniform(0, 20000)]), rng.choice([0.0, 1.5, -3.0]))
                for i in range(size)
                if rng.random() < 0.7
            }
            entries = build_leaderboard(accounts, latest, 10000)
            for view in (entries, daily_view(entries), total_return_view(entries)):
                self.assertEqual(sorted(e.rank for e in view), list(range(1, size + 1)))

    def test_non_positive_baseline_is_rejected(self):
        with self.assertRaises(InvalidInputError):
            build_leaderboard(self.accounts, self.latest, 0)

    def test_empty_roster(self):
        views = build_leaderboard_views([], {}, 10000)
        self.assertEqual(views.all_time, [])
        self.assertEqual(views.daily, [])
        self.assertIsNone(views.entry_for("A"))


class SnapshotStoreTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username="u1", email="u1@example.com", password="pw")
        self.profile = Profile.objects.create(user=self.user, balance=Decimal("1000.00"))

    def test_latest_value_without_rows_is_zero(self):
        self.assertEqual(get_latest_value(self.user.id), 0)

    def test_latest_value_store_failure_propagates(self):
        with patch.object(PortfolioSnapshot.objects, "filter", side_effect=DatabaseError("connection refused")):
            with self.assertRaises(SnapshotStoreError) as ctx:
                get_latest_value(self.user.id)
        self.assertIn("Failed to fetch latest portfolio value", str(ctx.exception))
        self.assertIn("connection refused", str(ctx.exception))

    def test_record_snapshot_values_cash_and_priced_positions(self):
        Position.objects.create(
            user=self.user, symbol="AAPL", shares=Decimal("10"), average_price=Decimal("40"), last_price=Decimal("50")
        )
        Position.objects.create(user=self.user, symbol="IBM", shares=Decimal("3"), average_price=Decimal("100"))

        snap = record_snapshot(self.user.id)

        self.assertEqual(snap.cash_balance, Decimal("1000.00"))
        self.assertEqual(snap.market_value, Decimal("500.00"))
        self.assertEqual(snap.total_value, Decimal("1500.00"))
        self.assertEqual(snap.daily_return, 0)
        self.assertEqual(snap.total_return, 0)
        self.assertEqual(get_latest_value(self.user.id), 1500.0)

    def test_record_snapshot_derives_returns_from_prior_rows(self):
        now = timezone.now()
        record_snapshot(self.user.id, as_of=now - timedelta(days=2))

        self.profile.balance = Decimal("1100.00")
        self.profile.save()
        record_snapshot(self.user.id, as_of=now - timedelta(days=1))

        self.profile.balance = Decimal("990.00")
        self.profile.save()
        latest = record_snapshot(self.user.id, as_of=now)

        self.assertEqual(latest.daily_return, Decimal("-10.000000"))
        self.assertEqual(latest.total_return, Decimal("-1.000000"))

        history = get_history(self.user.id, 30)
        self.assertEqual([s.total_value for s in history], [1000.0, 1100.0, 990.0])
        self.assertEqual([s.daily_return for s in history], [0.0, 10.0, -10.0])

    def test_record_snapshot_without_profile_fails_loudly(self):
        other = get_user_model().objects.create_user(username="u2", password="pw")
        with self.assertRaises(SnapshotStoreError) as ctx:
            record_snapshot(other.id)
        self.assertIn("Failed to record portfolio snapshot", str(ctx.exception))

    def test_record_snapshot_rejected_write_fails_loudly(self):
        with patch.object(PortfolioSnapshot.objects, "create", side_effect=DatabaseError("write rejected")):
            with self.assertRaises(SnapshotStoreError) as ctx:
                record_snapshot(self.user.id)
        self.assertEqual(str(ctx.exception), "Failed to record portfolio snapshot: write rejected")
        self.assertEqual(PortfolioSnapshot.objects.count(), 0)

    def test_history_window_and_empty_result(self):
        self.assertEqual(get_history(self.user.id, 30), [])

        now = timezone.now()
        record_snapshot(self.user.id, as_of=now - timedelta(days=10))
        record_snapshot(self.user.id, as_of=now - timedelta(hours=2))

        self.assertEqual(len(get_history(self.user.id, 30)), 2)
        self.assertEqual(len(get_history(self.user.id, 1)), 1)

    def test_history_store_failure_propagates(self):
        with patch.object(PortfolioSnapshot.objects, "filter", side_effect=DatabaseError("timeout")):
            with self.assertRaises(SnapshotStoreError) as ctx:
                get_history(self.user.id, 30)
        self.assertIn("Failed to fetch portfolio history", str(ctx.exception))


class WindowStartTests(SimpleTestCase):
    def test_windows(self):
        now = datetime(2024, 3, 31, 12, 0, tzinfo=py_timezone.utc)
        self.assertIsNone(window_start(Timeframe.ALL, now))
        self.assertEqual(window_start(Timeframe.DAILY, now), now - timedelta(days=1))
        self.assertEqual(window_start(Timeframe.WEEKLY, now), now - timedelta(days=7))
        self.assertEqual(window_start(Timeframe.MONTHLY, now), datetime(2024, 2, 29, 12, 0, tzinfo=py_timezone.utc))

    def test_monthly_window_crosses_year(self):
        now = datetime(2024, 1, 15, tzinfo=py_timezone.utc)
        self.assertEqual(window_start(Timeframe.MONTHLY, now), datetime(2023, 12, 15, tzinfo=py_timezone.utc))


class ComputeLeaderboardTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.alice = User.objects.create_user(username="alice", email="alice@example.com", password="pw")
        self.bob = User.objects.create_user(username="bob", email="bob@example.com", password="pw")
        self.carol = User.objects.create_user(username="carol", email="carol@example.com", password="pw")
        Profile.objects.create(user=self.alice, balance=Decimal("10000.00"))
        Profile.objects.create(user=self.bob, balance=Decimal("9500.00"))
        Profile.objects.create(user=self.carol, balance=Decimal("7000.00"))

        now = timezone.now()
        self._row(self.alice, now - timedelta(days=3), "11000.00", "0")
        self._row(self.alice, now - timedelta(hours=1), "12000.00", "9.090909")
        self._row(self.bob, now - timedelta(days=3), "13000.00", "2.5")

    def _row(self, user, created_at, total, daily):
        PortfolioSnapshot.objects.create(
            user=user,
            created_at=created_at,
            total_value=Decimal(total),
            market_value=Decimal("0.00"),
            cash_balance=Decimal(total),
            daily_return=Decimal(daily),
        )

    def test_all_time_uses_latest_snapshot_per_user(self):
        views = compute_leaderboard(timeframe=Timeframe.ALL)

        self.assertEqual(
            [(e.display_label, e.total_value, e.rank) for e in views.all_time],
            [("bob@example.com", 13000.0, 1), ("alice@example.com", 12000.0, 2), ("carol@example.com", 7000.0, 3)],
        )
        self.assertEqual([e.display_label for e in views.daily][:1], ["alice@example.com"])
        self.assertAlmostEqual(views.entry_for(self.carol.id).total_return, -30.0)

    def test_daily_window_ignores_older_snapshots(self):
        views = compute_leaderboard(timeframe=Timeframe.DAILY)
        bob = views.entry_for(self.bob.id)
        self.assertEqual(bob.total_value, 9500.0)
        self.assertEqual(bob.daily_return, 0)
        self.assertEqual(views.entry_for(self.alice.id).rank, 1)

    def test_latest_snapshot_per_user_in_one_query(self):
        now = timezone.now()
        tied = now - timedelta(hours=2)
        self._row(self.carol, tied, "7100.00", "1.0")
        self._row(self.carol, tied, "7200.00", "1.4")

        with self.assertNumQueries(1):
            latest = latest_snapshots_by_user()
        self.assertEqual(
            {user_id: snap.total_value for user_id, snap in latest.items()},
            {self.alice.id: 12000.0, self.bob.id: 13000.0, self.carol.id: 7200.0},
        )

        recent = latest_snapshots_by_user(since=now - timedelta(days=1))
        self.assertEqual(sorted(recent), sorted([self.alice.id, self.carol.id]))
        self.assertEqual(recent[self.alice.id].total_value, 12000.0)

    def test_roster_sorts_by_display_label(self):
        ben = get_user_model().objects.create_user(username="ben", password="pw")
        Profile.objects.create(user=ben)

        self.assertEqual(
            [a.display_label for a in account_roster()],
            ["alice@example.com", "ben", "bob@example.com", "carol@example.com"],
        )

    def test_empty_roster(self):
        Profile.objects.all().delete()
        views = compute_leaderboard()
        self.assertEqual(views.all_time, [])


class LeaderboardViewTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username="u1", email="u1@example.com", password="pw")
        self.other = User.objects.create_user(username="u2", email="u2@example.com", password="pw")
        Profile.objects.create(user=self.user, balance=Decimal("10500.00"))
        Profile.objects.create(user=self.other, balance=Decimal("11000.00"))
        self.client = Client()

    def test_requires_login(self):
        resp = self.client.get(reverse("leaderboards:leaderboard"))
        self.assertEqual(resp.status_code, 302)

    def test_returns_views_and_own_rank(self):
        self.client.login(username="u1", password="pw")
        resp = self.client.get(reverse("leaderboards:leaderboard"), {"timeframe": "weekly"})

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["timeframe"], "weekly")
        self.assertEqual(data["user_rank"]["rank"], 2)
        self.assertEqual(data["user_rank"]["total_return"], 5.0)
        self.assertEqual([row["rank"] for row in data["all_time"]], [1, 2])
        self.assertEqual(len(data["daily"]), 2)
        self.assertEqual(len(data["total_return"]), 2)

    def test_rejects_unknown_timeframe(self):
        self.client.login(username="u1", password="pw")
        resp = self.client.get(reverse("leaderboards:leaderboard"), {"timeframe": "yearly"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "INVALID_TIMEFRAME")

    def test_timeframe_in_path(self):
        self.client.login(username="u2", password="pw")
        resp = self.client.get(reverse("leaderboards:leaderboard_timeframe", args=["monthly"]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["timeframe"], "monthly")
        self.assertEqual(resp.json()["user_rank"]["rank"], 1)

        resp = self.client.get(reverse("leaderboards:leaderboard_timeframe", args=["hourly"]))
        self.assertEqual(resp.status_code, 400)


class ComputePortfolioSnapshotsCommandTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.u1 = User.objects.create_user(username="u1", password="pw")
        self.u2 = User.objects.create_user(username="u2", password="pw")
        Profile.objects.create(user=self.u1, balance=Decimal("10000.00"))
        Profile.objects.create(user=self.u2, balance=Decimal("2000.00"))

    def test_records_one_snapshot_per_account(self):
        out = StringIO()
        call_command("compute_portfolio_snapshots", stdout=out)

        self.assertIn("Created 2 portfolio snapshot(s).", out.getvalue())
        self.assertEqual(PortfolioSnapshot.objects.count(), 2)
        self.assertEqual(PortfolioSnapshot.objects.values("created_at").distinct().count(), 1)

    def test_can_restrict_to_one_user(self):
        call_command("compute_portfolio_snapshots", user_id=self.u2.id, stdout=StringIO())
        snap = PortfolioSnapshot.objects.get()
        self.assertEqual(snap.user_id, self.u2.id)
        self.assertEqual(snap.total_value, Decimal("2000.00"))

    def test_no_accounts(self):
        Profile.objects.all().delete()
        out = StringIO()
        call_command("compute_portfolio_snapshots", stdout=out)
        self.assertIn("No accounts found.", out.getvalue())
