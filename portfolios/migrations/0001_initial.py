from __future__ import annotations

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Position",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("symbol", models.CharField(max_length=16)),
                ("shares", models.DecimalField(decimal_places=6, max_digits=20)),
                ("average_price", models.DecimalField(decimal_places=6, max_digits=20)),
                ("last_price", models.DecimalField(blank=True, decimal_places=6, max_digits=20, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="positions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("user", "symbol"), name="uniq_position_user_symbol"),
                    models.CheckConstraint(
                        condition=models.Q(shares__gte=0), name="position_shares_nonnegative"
                    ),
                ],
            },
        ),
    ]
