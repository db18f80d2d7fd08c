"""
Analytics API

GET /api/analytics/thread-activity?threadId=&reactionType=&timeRange=30

Daily reaction totals across the caller's recent threads, for the dashboard
activity graph. Per-user summaries live under /api/users/{id}/analytics.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from threadspire.core.auth import get_current_user_id
from threadspire.features.analytics import service as analytics_service
from threadspire.models.analytics import DailyReactions

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/thread-activity", response_model=List[DailyReactions])
def thread_activity_endpoint(
    thread_id: Optional[str] = Query(None, alias="threadId"),
    reaction_type: Optional[str] = Query(None, alias="reactionType"),
    time_range: int = Query(30, alias="timeRange", description="Days to look back"),
    caller_id: str = Depends(get_current_user_id),
):
    return analytics_service.compute_thread_activity(
        caller_id,
        thread_id=thread_id,
        reaction_type=reaction_type,
        time_range_days=time_range,
    )
