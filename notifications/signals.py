from __future__ import annotations

from django.db import transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from accounts.models import Profile
from leaderboards.models import PortfolioSnapshot
from portfolios.models import Position

from .services import ChangeTopic, publish_change


def _publish_on_commit(topic: str) -> None:
    transaction.on_commit(lambda: publish_change(topic))


@receiver([post_save, post_delete], sender=Position, dispatch_uid="notify_position_change")
def position_changed(sender, **kwargs):
    _publish_on_commit(ChangeTopic.POSITIONS)


@receiver([post_save, post_delete], sender=Profile, dispatch_uid="notify_profile_change")
def profile_changed(sender, **kwargs):
    _publish_on_commit(ChangeTopic.PROFILES)


@receiver([post_save, post_delete], sender=PortfolioSnapshot, dispatch_uid="notify_history_change")
def history_changed(sender, **kwargs):
    _publish_on_commit(ChangeTopic.HISTORY)
