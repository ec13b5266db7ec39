from __future__ import annotations

from django.conf import settings
from django.contrib.auth.decorators import login_required
from django.http import JsonResponse

from .services import get_performance
from .types import Snapshot


MAX_HISTORY_DAYS = 3650


def snapshot_to_dict(snapshot: Snapshot) -> dict:
    return {
        "date": snapshot.date.isoformat(),
        "value": snapshot.total_value,
        "market_value": snapshot.market_value,
        "cash_balance": snapshot.cash_balance,
        "daily_return": snapshot.daily_return,
        "total_return": snapshot.total_return,
    }


@login_required
def performance(request):
    raw_days = request.GET.get("days") or settings.PORTFOLIO_HISTORY_DAYS
    try:
        days = int(raw_days)
    except ValueError:
        return JsonResponse({"error": "INVALID_DAYS"}, status=400)
    if days < 1 or days > MAX_HISTORY_DAYS:
        return JsonResponse({"error": "INVALID_DAYS"}, status=400)

    result = get_performance(request.user.id, days)
    return JsonResponse(
        {
            "days": days,
            "synthetic": result.synthetic,
            "metrics": result.metrics.as_dict(),
            "history": [snapshot_to_dict(s) for s in result.history],
        }
    )
