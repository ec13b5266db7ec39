from django.conf import settings
from django.db import models
from django.utils import timezone


class Timeframe(models.TextChoices):
    ALL = "all", "All time"
    DAILY = "daily", "Past day"
    WEEKLY = "weekly", "Past week"
    MONTHLY = "monthly", "Past month"


class PortfolioSnapshot(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="portfolio_snapshots",
    )
    created_at = models.DateTimeField(default=timezone.now)

    total_value = models.DecimalField(max_digits=20, decimal_places=2)
    market_value = models.DecimalField(max_digits=20, decimal_places=2)
    cash_balance = models.DecimalField(max_digits=20, decimal_places=2)

    # Percentages: vs the previous snapshot, and vs the user's first snapshot.
    daily_return = models.DecimalField(max_digits=12, decimal_places=6, default=0)
    total_return = models.DecimalField(max_digits=12, decimal_places=6, default=0)

    class Meta:
        indexes = [
            models.Index(fields=["-created_at"], name="snapshot_created_idx"),
            models.Index(fields=["user", "-created_at"], name="snapshot_user_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.user_id}@{self.created_at.isoformat()}"
