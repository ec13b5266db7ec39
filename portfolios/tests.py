from __future__ import annotations

import random
from datetime import date, datetime, timedelta
from datetime import timezone as py_timezone
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import Client, SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from accounts.models import Profile
from leaderboards.models import PortfolioSnapshot
from leaderboards.services import compute_leaderboard

from .exceptions import InvalidInputError
from .metrics import compute_metrics, normalize_series
from .services import get_performance
from .synthesis import synthesize, synthesize_to_target
from .types import PerformanceMetrics, Snapshot


FIXED_NOW = datetime(2024, 3, 22, 15, 0, tzinfo=py_timezone.utc)


class MidpointRng:
    """Always returns the middle of the requested range (i.e. zero noise)."""

    def uniform(self, a, b):
        return (a + b) / 2


class CeilingRng:
    def uniform(self, a, b):
        return b


def _series(values, returns=None):
    returns = returns or [0.0] * len(values)
    start = date(2024, 1, 1)
    return [
        Snapshot(date=start + timedelta(days=i), total_value=v, daily_return=r)
        for i, (v, r) in enumerate(zip(values, returns))
    ]


class ComputeMetricsTests(SimpleTestCase):
    def test_empty_series_is_all_zero(self):
        self.assertEqual(compute_metrics([]), PerformanceMetrics())

    def test_single_point_is_all_zero(self):
        metrics = compute_metrics(_series([1000.0], [3.5]))
        self.assertEqual(metrics.total_return, 0)
        self.assertEqual(metrics.volatility, 0)
        self.assertEqual(metrics.max_drawdown, 0)
        self.assertEqual(metrics.sharpe_ratio, 0)

    def test_reference_scenario(self):
        series = _series([10000, 10100, 9900, 10500], [0, 1.0, -1.98, 6.06])
        metrics = compute_metrics(series)

        self.assertAlmostEqual(metrics.total_return, 5.0)
        self.assertAlmostEqual(metrics.max_drawdown, 200 / 10100 * 100)
        self.assertAlmostEqual(metrics.max_drawdown, 1.98, places=2)
        self.assertEqual(metrics.daily_return, 6.06)
        self.assertGreater(metrics.volatility, 0)
        self.assertGreater(metrics.sharpe_ratio, 0)

    def test_volatility_is_population_std_dev(self):
        metrics = compute_metrics(_series([100, 102, 101], [0.0, 2.0, 4.0]))
        # mean 2, squared deviations 4 + 0 + 4, divided by 3
        self.assertAlmostEqual(metrics.volatility, (8 / 3) ** 0.5)
        self.assertAlmostEqual(metrics.sharpe_ratio, 2 / (8 / 3) ** 0.5)

    def test_zero_first_value_guards_total_return(self):
        metrics = compute_metrics(_series([0, 500, 800]))
        self.assertEqual(metrics.total_return, 0)

    def test_flat_returns_have_zero_sharpe(self):
        metrics = compute_metrics(_series([100, 101, 102], [1.0, 1.0, 1.0]))
        self.assertEqual(metrics.volatility, 0)
        self.assertEqual(metrics.sharpe_ratio, 0)

    def test_non_decreasing_series_has_no_drawdown(self):
        metrics = compute_metrics(_series([100, 100, 105, 110, 110]))
        self.assertEqual(metrics.max_drawdown, 0)

    def test_drawdown_uses_running_peak(self):
        metrics = compute_metrics(_series([100, 120, 90, 130, 117]))
        self.assertAlmostEqual(metrics.max_drawdown, 25.0)

    def test_drawdown_is_never_negative(self):
        rng = random.Random(7)
        for _ in range(50):
            values = [rng.uniform(0, 1000) for _ in range(rng.randint(2, 20))]
            metrics = compute_metrics(_series(values))
            self.assertGreaterEqual(metrics.max_drawdown, 0)
            if values == sorted(values):
                self.assertEqual(metrics.max_drawdown, 0)
            else:
                self.assertGreater(metrics.max_drawdown, 0)

    def test_normalize_series_sorts_newest_first_input(self):
        series = _series([1, 2, 3])
        self.assertEqual(normalize_series(list(reversed(series))), series)


class SynthesizeTests(SimpleTestCase):
    def test_single_day_produces_25_hourly_points(self):
        history = synthesize(10000, 1, rng=random.Random(1), now=FIXED_NOW)

        self.assertEqual(len(history), 25)
        self.assertEqual(history[0].date, FIXED_NOW - timedelta(hours=24))
        self.assertEqual(history[-1].date, FIXED_NOW)
        for earlier, later in zip(history, history[1:]):
            self.assertEqual(later.date - earlier.date, timedelta(hours=1))

    def test_multi_day_produces_one_point_per_day(self):
        history = synthesize(10000, 30, rng=random.Random(1), now=FIXED_NOW)

        self.assertEqual(len(history), 30)
        self.assertEqual(history[0].date, date(2024, 2, 22))
        self.assertEqual(history[-1].date, date(2024, 3, 22))

    def test_zero_noise_walk_follows_trend_shape(self):
        history = synthesize(10000, 4, rng=MidpointRng(), now=FIXED_NOW)

        # 9500 start; two early days at -0.05%, two recent days at +0.1%
        expected = 9500.0
        for point, trend in zip(history, [-0.0005, -0.0005, 0.001, 0.001]):
            expected *= 1 + trend
            self.assertAlmostEqual(point.total_value, round(expected, 2), places=2)

        self.assertEqual(history[0].daily_return, 0)
        self.assertEqual(history[0].total_return, -0.05)
        self.assertEqual(history[-1].daily_return, 0.1)

    def test_hourly_first_step_uses_early_trend(self):
        history = synthesize(10000, 1, rng=MidpointRng(), now=FIXED_NOW)
        self.assertEqual(history[0].total_value, 9499.05)
        self.assertEqual(history[0].total_return, -0.01)
        self.assertEqual(history[-1].daily_return, 0.02)

    def test_free_running_split_is_80_20(self):
        for point in synthesize(5000, 10, rng=random.Random(3), now=FIXED_NOW):
            self.assertAlmostEqual(point.market_value, point.total_value * 0.8, delta=0.01)
            self.assertAlmostEqual(point.cash_balance, point.total_value * 0.2, delta=0.01)

    def test_seeded_rng_is_reproducible(self):
        first = synthesize(10000, 30, rng=random.Random(42), now=FIXED_NOW)
        second = synthesize(10000, 30, rng=random.Random(42), now=FIXED_NOW)
        self.assertEqual(first, second)

    def test_noise_stays_within_bounds(self):
        history = synthesize(10000, 30, rng=CeilingRng(), now=FIXED_NOW)
        for point in history[1:]:
            self.assertLessEqual(point.daily_return, 2.11)

    def test_non_positive_days_yield_empty_series(self):
        self.assertEqual(synthesize(10000, 0, now=FIXED_NOW), [])

    @override_settings(TIME_ZONE="America/New_York")
    def test_daily_points_follow_local_calendar(self):
        # 02:00 UTC on the 22nd is still the evening of the 21st in New York.
        late_evening = datetime(2024, 3, 22, 2, 0, tzinfo=py_timezone.utc)
        free_running = synthesize(10000, 3, rng=MidpointRng(), now=late_evening)
        anchored = synthesize_to_target(10000, 10500, 3, rng=MidpointRng(), now=late_evening)

        self.assertEqual(free_running[-1].date, date(2024, 3, 21))
        self.assertEqual(anchored[-1].date, date(2024, 3, 21))


class SynthesizeToTargetTests(SimpleTestCase):
    def test_last_point_equals_target_for_any_noise(self):
        for seed in range(20):
            for days in (1, 2, 7, 30, 90):
                history = synthesize_to_target(
                    10000, 12345.67, days, rng=random.Random(seed), now=FIXED_NOW
                )
                self.assertEqual(len(history), days)
                self.assertEqual(history[-1].total_value, 12345.67)

    def test_target_reached_even_with_extreme_noise(self):
        history = synthesize_to_target(10000, 8000, 30, rng=CeilingRng(), now=FIXED_NOW)
        self.assertEqual(history[-1].total_value, 8000)
        self.assertEqual(history[-1].total_return, -20.0)

    def test_zero_noise_walk_is_geometric(self):
        history = synthesize_to_target(1000, 2000, 4, rng=MidpointRng(), now=FIXED_NOW)
        growth = 2 ** 0.25
        self.assertAlmostEqual(history[0].total_value, round(1000 * growth, 2), places=2)
        self.assertAlmostEqual(history[1].daily_return, (growth - 1) * 100, places=1)

    def test_anchored_split_is_90_10(self):
        history = synthesize_to_target(10000, 11000, 5, rng=random.Random(5), now=FIXED_NOW)
        last = history[-1]
        self.assertEqual(last.market_value, 9900.0)
        self.assertEqual(last.cash_balance, 1100.0)
        self.assertEqual(history[0].daily_return, 0)
        self.assertEqual(last.date, date(2024, 3, 22))

    def test_zero_target_is_allowed(self):
        history = synthesize_to_target(10000, 0, 3, rng=random.Random(1), now=FIXED_NOW)
        self.assertEqual(history[-1].total_value, 0)

    def test_non_positive_initial_value_is_rejected(self):
        for bad in (0, -1):
            with self.assertRaises(InvalidInputError):
                synthesize_to_target(bad, 1000, 10)

    def test_negative_target_or_empty_window_is_rejected(self):
        with self.assertRaises(InvalidInputError):
            synthesize_to_target(1000, -5, 10)
        with self.assertRaises(InvalidInputError):
            synthesize_to_target(1000, 1200, 0)


class PerformanceServiceTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username="u1", email="u1@example.com", password="pw")
        self.profile = Profile.objects.create(user=self.user, balance=Decimal("12000.00"))

    def _snapshot(self, *, days_ago, total_value, daily_return="0"):
        return PortfolioSnapshot.objects.create(
            user=self.user,
            created_at=timezone.now() - timedelta(days=days_ago),
            total_value=Decimal(total_value),
            market_value=Decimal("0.00"),
            cash_balance=Decimal(total_value),
            daily_return=Decimal(daily_return),
        )

    def test_without_history_synthesizes_to_latest_value(self):
        self._snapshot(days_ago=40, total_value="11000.00")

        result = get_performance(self.user.id, 30, rng=random.Random(1))

        self.assertTrue(result.synthetic)
        self.assertEqual(len(result.history), 30)
        self.assertEqual(result.history[-1].total_value, 11000.0)

    def test_without_any_snapshot_uses_profile_balance(self):
        result = get_performance(self.user.id, 30, rng=random.Random(1))
        self.assertTrue(result.synthetic)
        self.assertEqual(result.history[-1].total_value, 12000.0)

    def test_snapshot_worth_zero_is_not_replaced_by_balance(self):
        self._snapshot(days_ago=40, total_value="0.00")

        result = get_performance(self.user.id, 30, rng=random.Random(1))

        self.assertTrue(result.synthetic)
        self.assertEqual(result.history[-1].total_value, 0.0)
        own = compute_leaderboard().entry_for(self.user.id)
        self.assertEqual(own.total_value, result.history[-1].total_value)

    def test_single_day_window_synthesizes_hourly(self):
        result = get_performance(self.user.id, 1, rng=random.Random(1))
        self.assertTrue(result.synthetic)
        self.assertEqual(len(result.history), 25)

    @override_settings(PORTFOLIO_BASELINE_VALUE=Decimal("0"))
    def test_zero_baseline_falls_back_to_free_running(self):
        result = get_performance(self.user.id, 10, rng=MidpointRng())
        self.assertTrue(result.synthetic)
        self.assertEqual(len(result.history), 10)
        self.assertEqual(result.history[0].total_return, -0.05)

    def test_recorded_history_is_used_when_available(self):
        self._snapshot(days_ago=3, total_value="10000.00")
        self._snapshot(days_ago=2, total_value="10100.00", daily_return="1.0")
        self._snapshot(days_ago=1, total_value="9900.00", daily_return="-1.98")
        self._snapshot(days_ago=0, total_value="10500.00", daily_return="6.06")

        result = get_performance(self.user.id, 30)

        self.assertFalse(result.synthetic)
        self.assertEqual([s.total_value for s in result.history], [10000.0, 10100.0, 9900.0, 10500.0])
        self.assertAlmostEqual(result.metrics.total_return, 5.0)
        self.assertAlmostEqual(result.metrics.max_drawdown, 1.98, places=2)


class PerformanceViewTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username="u1", password="pw")
        Profile.objects.create(user=self.user, balance=Decimal("10000.00"))
        self.client = Client()

    def test_requires_login(self):
        resp = self.client.get(reverse("portfolios:performance"))
        self.assertEqual(resp.status_code, 302)

    def test_returns_history_and_metrics(self):
        self.client.login(username="u1", password="pw")
        resp = self.client.get(reverse("portfolios:performance"), {"days": "7"})

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["days"], 7)
        self.assertTrue(data["synthetic"])
        self.assertEqual(len(data["history"]), 7)
        self.assertEqual(data["history"][-1]["value"], 10000.0)
        self.assertEqual(
            set(data["metrics"]),
            {"total_return", "daily_return", "volatility", "max_drawdown", "sharpe_ratio"},
        )

    def test_rejects_invalid_days(self):
        self.client.login(username="u1", password="pw")
        for bad in ("abc", "0", "-3"):
            resp = self.client.get(reverse("portfolios:performance"), {"days": bad})
            self.assertEqual(resp.status_code, 400)
            self.assertEqual(resp.json()["error"], "INVALID_DAYS")
