from __future__ import annotations

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse

from leaderboards.models import Timeframe
from leaderboards.services import compute_leaderboard


def leaderboard_payload(*, user_id, timeframe: str) -> dict:
    views = compute_leaderboard(timeframe=timeframe)
    own = views.entry_for(user_id)
    return {
        "type": "leaderboard",
        "timeframe": timeframe,
        "user_rank": own.as_dict() if own else None,
        "all_time": [e.as_dict() for e in views.all_time],
        "daily": [e.as_dict() for e in views.daily],
        "total_return": [e.as_dict() for e in views.total_return],
    }


@login_required
def leaderboard(request, timeframe: str | None = None):
    timeframe = timeframe or request.GET.get("timeframe") or Timeframe.ALL
    if timeframe not in Timeframe.values:
        return JsonResponse({"error": "INVALID_TIMEFRAME"}, status=400)
    return JsonResponse(leaderboard_payload(user_id=request.user.id, timeframe=timeframe))
