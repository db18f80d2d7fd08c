"""
threadspire/features/analytics/service.py

Analytics service: loads documents from the entity store and hands them to
the pure reducers. Analytics are private; only the user may read their own.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from threadspire.core.errors import PermissionError, ValidationError
from threadspire.core.logging import log_event
from threadspire.core.tracing import start_span
from threadspire.features.analytics.reducers import reduce_daily_reactions, reduce_user_analytics
from threadspire.features.store import get_store
from threadspire.features.users.service import get_user, require_caller
from threadspire.models.analytics import DailyReactions, UserAnalytics
from threadspire.models.thread import Emoji

OLDEST_FIRST = [("created_at", False)]


def compute_user_analytics(user_id: str, caller_id: Optional[str], now: Optional[datetime] = None) -> UserAnalytics:
    """
    Engagement summary for `user_id`.

    Raises:
        PermissionError: caller is anonymous or not `user_id`
    """
    caller_id = require_caller(caller_id, "view analytics")
    if caller_id != user_id:
        raise PermissionError("You do not have permission to view this data")

    with start_span("analytics.user", {"user_id": user_id}):
        threads = get_store().threads
        authored = threads.find_many({"author_id": user_id}, sort=OLDEST_FIRST)
        forks = threads.find_many(
            {"original_author_id": user_id, "original_thread_id__ne": None},
            sort=OLDEST_FIRST,
        )

        author_names: Dict[str, str] = {}
        for author_id in {f.author_id for f in forks}:
            author = get_user(author_id)
            if author is not None:
                author_names[author_id] = author.display_name

        user = get_user(user_id)
        analytics = reduce_user_analytics(
            user_id,
            authored,
            forks,
            bookmarks_made=len(user.bookmarks) if user else 0,
            author_names=author_names,
            now=now,
        )

    log_event(
        "info",
        "analytics.computed",
        user_id=user_id,
        event_type="analytics.user",
        extra={"threads": analytics.total_threads, "forks": len(forks)},
    )
    return analytics


def compute_thread_activity(
    caller_id: Optional[str],
    thread_id: Optional[str] = None,
    reaction_type: Optional[str] = None,
    time_range_days: int = 30,
    now: Optional[datetime] = None,
) -> List[DailyReactions]:
    """
    Daily reaction totals over the caller's threads created in the window.

    Raises:
        ValidationError: unknown reaction_type or time_range_days < 1
    """
    caller_id = require_caller(caller_id, "view analytics")
    emoji = None
    if reaction_type:
        emoji = Emoji.parse(reaction_type)
        if emoji is None:
            raise ValidationError("Invalid reaction type")
    if time_range_days < 1:
        raise ValidationError("time_range_days must be >= 1")

    now = now or datetime.now(timezone.utc)
    filter = {"author_id": caller_id, "created_at__gte": now - timedelta(days=time_range_days)}
    if thread_id:
        filter["thread_id"] = thread_id

    with start_span("analytics.thread_activity", {"user_id": caller_id, "thread_id": thread_id}):
        threads = get_store().threads.find_many(filter, sort=OLDEST_FIRST)
        return reduce_daily_reactions(threads, emoji=emoji, now=now)
