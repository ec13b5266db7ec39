from django.contrib import admin

from .models import PortfolioSnapshot


@admin.register(PortfolioSnapshot)
class PortfolioSnapshotAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "user",
        "created_at",
        "cash_balance",
        "market_value",
        "total_value",
        "daily_return",
        "total_return",
    )
    list_filter = ("created_at",)
    search_fields = ("user__username", "user__email")
