from __future__ import annotations

import asyncio
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import call, patch

from asgiref.sync import sync_to_async
from channels.layers import ChannelLayerManager, get_channel_layer
from channels.testing import WebsocketCommunicator
from channels_redis.core import RedisChannelLayer
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from accounts.models import Profile
from leaderboards.models import PortfolioSnapshot
from portfolios.models import Position
from simutrader.settings import channel_layers_for

from .consumers import LeaderboardConsumer
from .services import ChangeTopic, publish_change, subscribe, unsubscribe


def _with_user(app, user):
    async def middleware(scope, receive, send):
        return await app(dict(scope, user=user), receive, send)

    return middleware


class PublishChangeTests(SimpleTestCase):
    async def test_publish_reaches_topic_subscribers_only(self):
        layer = get_channel_layer()
        history_channel = await layer.new_channel()
        profile_channel = await layer.new_channel()
        await subscribe(layer, history_channel, [ChangeTopic.HISTORY])
        await subscribe(layer, profile_channel, [ChangeTopic.PROFILES])

        sent = await sync_to_async(publish_change)(ChangeTopic.HISTORY)

        self.assertTrue(sent)
        message = await layer.receive(history_channel)
        self.assertEqual(message, {"type": "topic.changed", "topic": "portfolio_history_changes"})
        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(layer.receive(profile_channel), timeout=0.05)

        await unsubscribe(layer, history_channel, [ChangeTopic.HISTORY])
        await unsubscribe(layer, profile_channel, [ChangeTopic.PROFILES])

    def test_without_channel_layer_is_a_no_op(self):
        with patch("notifications.services.get_channel_layer", return_value=None):
            self.assertFalse(publish_change(ChangeTopic.POSITIONS))


class ChangeSignalTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="u1", password="pw")

    @patch("notifications.signals.publish_change")
    def test_profile_changes_publish_after_commit(self, mock_publish):
        with self.captureOnCommitCallbacks(execute=True):
            profile = Profile.objects.create(user=self.user, balance=Decimal("10000.00"))
        mock_publish.assert_called_once_with(ChangeTopic.PROFILES)

        with self.captureOnCommitCallbacks(execute=True):
            profile.delete()
        self.assertEqual(mock_publish.call_args_list, [call(ChangeTopic.PROFILES), call(ChangeTopic.PROFILES)])

    @patch("notifications.signals.publish_change")
    def test_position_and_history_topics(self, mock_publish):
        with self.captureOnCommitCallbacks(execute=True):
            Position.objects.create(
                user=self.user, symbol="AAPL", shares=Decimal("1"), average_price=Decimal("100")
            )
            PortfolioSnapshot.objects.create(
                user=self.user,
                created_at=timezone.now(),
                total_value=Decimal("100.00"),
                market_value=Decimal("100.00"),
                cash_balance=Decimal("0.00"),
            )
        self.assertEqual(
            mock_publish.call_args_list, [call(ChangeTopic.POSITIONS), call(ChangeTopic.HISTORY)]
        )

    @patch("notifications.signals.publish_change")
    def test_nothing_is_published_before_commit(self, mock_publish):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            Profile.objects.create(user=self.user)
        self.assertEqual(len(callbacks), 1)
        mock_publish.assert_not_called()


class LeaderboardConsumerTests(SimpleTestCase):
    def setUp(self):
        self.calls = []

        def fake_payload(*, user_id, timeframe):
            self.calls.append((user_id, timeframe))
            return {"type": "leaderboard", "timeframe": timeframe, "version": len(self.calls)}

        patcher = patch("notifications.consumers.leaderboard_payload", fake_payload)
        patcher.start()
        self.addCleanup(patcher.stop)

    async def test_pushes_on_connect_and_on_every_change(self):
        user = SimpleNamespace(is_authenticated=True, id=7)
        app = _with_user(LeaderboardConsumer.as_asgi(), user)
        communicator = WebsocketCommunicator(app, "/ws/leaderboard/?timeframe=weekly")

        connected, _ = await communicator.connect()
        self.assertTrue(connected)
        first = await communicator.receive_json_from()
        self.assertEqual(first, {"type": "leaderboard", "timeframe": "weekly", "version": 1})

        layer = get_channel_layer()
        await layer.group_send("profile_changes", {"type": "topic.changed", "topic": "profile_changes"})
        second = await communicator.receive_json_from()
        self.assertEqual(second["version"], 2)

        await layer.group_send(
            "portfolio_history_changes", {"type": "topic.changed", "topic": "portfolio_history_changes"}
        )
        third = await communicator.receive_json_from()
        self.assertEqual(third["version"], 3)
        self.assertEqual(self.calls, [(7, "weekly")] * 3)

        await communicator.disconnect()

    async def test_client_can_switch_timeframe(self):
        user = SimpleNamespace(is_authenticated=True, id=3)
        communicator = WebsocketCommunicator(_with_user(LeaderboardConsumer.as_asgi(), user), "/ws/leaderboard/")
        await communicator.connect()
        await communicator.receive_json_from()

        await communicator.send_json_to({"timeframe": "daily"})
        pushed = await communicator.receive_json_from()
        self.assertEqual(pushed["timeframe"], "daily")

        await communicator.send_json_to({"timeframe": "decade"})
        self.assertTrue(await communicator.receive_nothing())

        await communicator.disconnect()

    async def test_unknown_timeframe_defaults_to_all(self):
        user = SimpleNamespace(is_authenticated=True, id=3)
        communicator = WebsocketCommunicator(
            _with_user(LeaderboardConsumer.as_asgi(), user), "/ws/leaderboard/?timeframe=bogus"
        )
        await communicator.connect()
        first = await communicator.receive_json_from()
        self.assertEqual(first["timeframe"], "all")
        await communicator.disconnect()

    async def test_anonymous_connection_is_rejected(self):
        anonymous = SimpleNamespace(is_authenticated=False, id=None)
        communicator = WebsocketCommunicator(_with_user(LeaderboardConsumer.as_asgi(), anonymous), "/ws/leaderboard/")
        connected, _ = await communicator.connect()
        self.assertTrue(connected)
        message = await communicator.receive_json_from()
        self.assertEqual(message, {"type": "error", "error": "NOT_AUTHENTICATED"})
        self.assertEqual(self.calls, [])
        await communicator.disconnect()


class ChannelLayerSettingsTests(SimpleTestCase):
    def test_in_memory_layer_without_redis(self):
        layers = channel_layers_for(None)
        self.assertEqual(layers["default"]["BACKEND"], "channels.layers.InMemoryChannelLayer")

    def test_redis_url_selects_shared_layer(self):
        layers = channel_layers_for("redis://cache.internal:6379/2")
        self.assertEqual(layers["default"]["BACKEND"], "channels_redis.core.RedisChannelLayer")
        self.assertEqual(layers["default"]["CONFIG"], {"hosts": ["redis://cache.internal:6379/2"]})

        # Building the backend does not connect, so this works without a server.
        with override_settings(CHANNEL_LAYERS=layers):
            layer = ChannelLayerManager()["default"]
        self.assertIsInstance(layer, RedisChannelLayer)
