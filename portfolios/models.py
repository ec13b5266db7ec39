from decimal import Decimal

from django.conf import settings
from django.db import models


class Position(models.Model):
    """
    A recorded holding. Prices are written by the market-data side; this
    project only reads them when valuing an account.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="positions"
    )
    symbol = models.CharField(max_length=16)
    shares = models.DecimalField(max_digits=20, decimal_places=6)
    average_price = models.DecimalField(max_digits=20, decimal_places=6)
    last_price = models.DecimalField(max_digits=20, decimal_places=6, blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "symbol"], name="uniq_position_user_symbol"),
            models.CheckConstraint(
                condition=models.Q(shares__gte=0), name="position_shares_nonnegative"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user_id}:{self.symbol}"

    @property
    def market_value(self) -> Decimal | None:
        if self.last_price is None:
            return None
        return self.last_price * self.shares
