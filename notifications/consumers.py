from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.conf import settings

from leaderboards.models import Timeframe
from leaderboards.views import leaderboard_payload

from .services import ChangeTopic, subscribe, unsubscribe


logger = logging.getLogger(__name__)


class LeaderboardConsumer(AsyncWebsocketConsumer):
    """
    Live leaderboard feed.

    Subscribes to every change topic and, on each "topic.changed" message,
    rebuilds the whole leaderboard and pushes it. Triggers are not
    debounced; the most recent push is the current state.
    """

    topics = tuple(ChangeTopic.values)
    user_id: int | None = None
    timeframe: str = Timeframe.ALL
    subscribed = False

    async def connect(self):
        await self.accept()

        user = self.scope.get("user")
        authenticated = bool(user and user.is_authenticated)
        if not authenticated and not getattr(settings, "DEBUG", False):
            await self.send_json({"type": "error", "error": "NOT_AUTHENTICATED"})
            await self.close(code=4401)
            return
        self.user_id = user.id if authenticated else None

        query = parse_qs((self.scope.get("query_string") or b"").decode())
        timeframe = (query.get("timeframe") or [Timeframe.ALL])[0]
        self.timeframe = timeframe if timeframe in Timeframe.values else Timeframe.ALL

        if self.channel_layer is None:
            await self.send_json({"type": "error", "error": "NO_CHANNEL_LAYER"})
            await self.close(code=1011)
            return

        await subscribe(self.channel_layer, self.channel_name, self.topics)
        self.subscribed = True
        await self._push_leaderboard()

    async def disconnect(self, code):
        if self.subscribed:
            await unsubscribe(self.channel_layer, self.channel_name, self.topics)
            self.subscribed = False

    async def receive(self, text_data=None, bytes_data=None):
        # Read-only feed; the only client action is switching timeframe.
        if not text_data:
            return
        try:
            msg = json.loads(text_data)
        except ValueError:
            return
        timeframe = (msg.get("timeframe") or "").strip() if isinstance(msg, dict) else ""
        if timeframe in Timeframe.values:
            self.timeframe = timeframe
            await self._push_leaderboard()

    async def topic_changed(self, event):
        logger.debug("%s changed; refreshing leaderboard for %s", event.get("topic"), self.channel_name)
        await self._push_leaderboard()

    async def send_json(self, payload: dict[str, Any]):
        await self.send(text_data=json.dumps(payload))

    async def _push_leaderboard(self):
        payload = await database_sync_to_async(leaderboard_payload)(
            user_id=self.user_id, timeframe=self.timeframe
        )
        await self.send_json(payload)
