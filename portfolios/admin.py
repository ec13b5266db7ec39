from django.contrib import admin

from .models import Position


@admin.register(Position)
class PositionAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "symbol", "shares", "average_price", "last_price", "updated_at")
    search_fields = ("user__username", "user__email", "symbol")
