from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from accounts.models import Profile
from leaderboards.services import record_snapshot
from portfolios.exceptions import SnapshotStoreError


class Command(BaseCommand):
    help = "Record one portfolio value snapshot per account (cron-friendly)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--user-id",
            type=int,
            default=None,
            help="Optionally restrict snapshot recording to a single user id.",
        )

    def handle(self, *args, **options):
        user_id = options.get("user_id")

        profiles_qs = Profile.objects.all()
        if user_id:
            profiles_qs = profiles_qs.filter(user_id=user_id)

        user_ids = list(profiles_qs.order_by("user_id").values_list("user_id", flat=True))
        if not user_ids:
            self.stdout.write("No accounts found.")
            return

        # One timestamp for the whole run keeps the rows comparable.
        as_of = timezone.now()
        total_snapshots = 0
        for uid in user_ids:
            try:
                record_snapshot(uid, as_of=as_of)
            except SnapshotStoreError as exc:
                raise CommandError(str(exc)) from exc
            total_snapshots += 1

        self.stdout.write(f"Created {total_snapshots} portfolio snapshot(s).")
