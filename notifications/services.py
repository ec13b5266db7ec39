from __future__ import annotations

import logging
from collections.abc import Iterable

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import models


logger = logging.getLogger(__name__)

CHANGE_MESSAGE_TYPE = "topic.changed"


class ChangeTopic(models.TextChoices):
    POSITIONS = "portfolio_changes", "Positions"
    PROFILES = "profile_changes", "Profiles"
    HISTORY = "portfolio_history_changes", "Portfolio history"


def change_message(topic: str) -> dict:
    # Only the topic travels; receivers recompute everything from the store.
    return {"type": CHANGE_MESSAGE_TYPE, "topic": str(topic)}


def publish_change(topic: str) -> bool:
    """
    Fan a "something changed" message out to every subscriber of `topic`.

    Returns False when no channel layer is configured.
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.debug("No channel layer configured; dropping %s notification", topic)
        return False
    async_to_sync(channel_layer.group_send)(str(topic), change_message(topic))
    return True


async def subscribe(channel_layer, channel_name: str, topics: Iterable[str]) -> None:
    for topic in topics:
        await channel_layer.group_add(str(topic), channel_name)


async def unsubscribe(channel_layer, channel_name: str, topics: Iterable[str]) -> None:
    for topic in topics:
        await channel_layer.group_discard(str(topic), channel_name)
