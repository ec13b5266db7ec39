from __future__ import annotations

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="PortfolioSnapshot",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("total_value", models.DecimalField(decimal_places=2, max_digits=20)),
                ("market_value", models.DecimalField(decimal_places=2, max_digits=20)),
                ("cash_balance", models.DecimalField(decimal_places=2, max_digits=20)),
                ("daily_return", models.DecimalField(decimal_places=6, default=0, max_digits=12)),
                ("total_return", models.DecimalField(decimal_places=6, default=0, max_digits=12)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="portfolio_snapshots",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["-created_at"], name="snapshot_created_idx"),
                    models.Index(fields=["user", "-created_at"], name="snapshot_user_created_idx"),
                ],
            },
        ),
    ]
