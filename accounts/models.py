from decimal import Decimal

from django.conf import settings
from django.db import models


def default_starting_balance() -> Decimal:
    return Decimal(str(settings.PORTFOLIO_BASELINE_VALUE))


class Profile(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="profile"
    )
    # Simulated cash on hand; positions are valued separately.
    balance = models.DecimalField(
        max_digits=20, decimal_places=2, default=default_starting_balance
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(balance__gte=0), name="profile_balance_nonnegative"
            ),
        ]

    def __str__(self) -> str:
        return self.display_label

    @property
    def display_label(self) -> str:
        return self.user.email or self.user.get_username()
