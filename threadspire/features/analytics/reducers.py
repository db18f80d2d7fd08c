"""
threadspire/features/analytics/reducers.py

Pure deterministic reducers for engagement analytics.
All reducers: (documents, now) -> immutable read model. No store access.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from threadspire.models.analytics import (
    DailyReactions,
    ForkSummary,
    MostForkedThread,
    SegmentReactions,
    ThreadActivitySummary,
    ThreadReactions,
    TopSegment,
    UserAnalytics,
)
from threadspire.models.thread import EMOJI_VALUES, Emoji, Segment, Thread, ThreadStatus

PREVIEW_LENGTH = 50
ANONYMOUS = "Anonymous"


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _resolve_now(now: Optional[datetime]) -> datetime:
    return _utc(now) if now is not None else datetime.now(timezone.utc)


def _by_creation(threads: Sequence[Thread]) -> List[Thread]:
    return sorted(threads, key=lambda t: _utc(t.created_at))


def preview(content: str) -> str:
    """First 50 characters, '...' appended when truncated."""
    if len(content) > PREVIEW_LENGTH:
        return content[:PREVIEW_LENGTH] + "..."
    return content


def activity_date(segment: Segment, thread: Thread, now: datetime) -> str:
    """
    Calendar day (UTC) a segment's reactions are attributed to.

    Segment date, else thread date, else now. Future dates clamp to now.
    """
    moment = segment.created_at or thread.created_at or now
    moment = _utc(moment)
    if moment > now:
        moment = now
    return moment.date().isoformat()


def most_forked_thread(threads: Sequence[Thread]) -> Optional[MostForkedThread]:
    """Highest fork_count; ties go to the earliest-created thread. None when max is 0."""
    best: Optional[Thread] = None
    for thread in _by_creation(threads):
        if best is None or thread.fork_count > best.fork_count:
            best = thread
    if best is None or best.fork_count == 0:
        return None
    return MostForkedThread(
        thread_id=best.thread_id,
        title=best.title,
        fork_count=best.fork_count,
        publish_date=best.created_at,
    )


def group_forks(forks: Sequence[Thread], author_names: Dict[str, str]) -> Dict[str, List[ForkSummary]]:
    """Forks keyed by the thread they were forked from; unlinked forks are skipped."""
    grouped: Dict[str, List[ForkSummary]] = {}
    for fork in _by_creation(forks):
        if not fork.original_thread_id:
            continue
        grouped.setdefault(fork.original_thread_id, []).append(ForkSummary(
            fork_id=fork.thread_id,
            title=fork.title,
            author=author_names.get(fork.author_id) or ANONYMOUS,
            created_at=fork.created_at,
        ))
    return grouped


def sum_reaction_counts(threads: Sequence[Thread]) -> Dict[str, int]:
    totals = {emoji: 0 for emoji in EMOJI_VALUES}
    for thread in threads:
        for segment in thread.segments:
            for emoji, count in segment.reaction_counts().items():
                totals[emoji] += count
    return totals


def thread_reactions(thread: Thread) -> ThreadReactions:
    """Per-segment breakdown; the top segment is the first with the maximum total."""
    segments: List[SegmentReactions] = []
    top: Optional[TopSegment] = None
    for position, segment in enumerate(thread.segments):
        total = segment.total_reactions
        segments.append(SegmentReactions(
            segment_id=segment.segment_id,
            position=position,
            content=preview(segment.content),
            reaction_counts=segment.reaction_counts(),
            total_reactions=total,
        ))
        if total > 0 and (top is None or total > top.total_reactions):
            top = TopSegment(
                segment_id=segment.segment_id,
                position=position,
                content=preview(segment.content),
                total_reactions=total,
            )
    return ThreadReactions(
        thread_id=thread.thread_id,
        title=thread.title,
        segments=segments,
        top_reacted_segment=top,
    )


def thread_activity(thread: Thread) -> ThreadActivitySummary:
    return ThreadActivitySummary(
        thread_id=thread.thread_id,
        title=thread.title,
        bookmarks=thread.bookmark_count,
        forks=thread.fork_count,
        reactions=thread.total_reactions,
        created_at=thread.created_at,
    )


def activity_by_date(threads: Sequence[Thread], now: datetime, emoji: Optional[Emoji] = None) -> Dict[str, int]:
    """YYYY-MM-DD -> reactions, over segments with at least one reaction."""
    daily: Dict[str, int] = {}
    for thread in threads:
        for segment in thread.segments:
            if emoji is not None:
                total = segment.reaction_counts()[emoji.value]
            else:
                total = segment.total_reactions
            if total > 0:
                day = activity_date(segment, thread, now)
                daily[day] = daily.get(day, 0) + total
    return daily


def reduce_user_analytics(
    user_id: str,
    threads: Sequence[Thread],
    forks: Sequence[Thread],
    bookmarks_made: int,
    author_names: Dict[str, str],
    now: Optional[datetime] = None,
) -> UserAnalytics:
    """
    Reduce a user's threads (and the forks of them) to analytics.

    Pure function: same inputs + same now => identical output.

    Args:
        threads: every thread authored by the user
        forks: threads anywhere whose original_author_id is the user
        bookmarks_made: size of the user's own bookmark list
        author_names: fork author id -> display name (missing => "Anonymous")
        now: fixed timestamp for deterministic results
    """
    now = _resolve_now(now)
    published = [t for t in _by_creation(threads) if t.status == ThreadStatus.PUBLISHED]

    return UserAnalytics(
        user_id=user_id,
        total_threads=len(threads),
        published_threads=len(published),
        draft_threads=len(threads) - len(published),
        total_bookmarks=bookmarks_made,
        total_bookmarks_received=sum(t.bookmark_count for t in threads),
        total_forks=sum(t.fork_count for t in threads),
        most_forked_thread=most_forked_thread(threads),
        forks_by_thread=group_forks(forks, author_names),
        reaction_counts=sum_reaction_counts(published),
        threads_with_reactions=[thread_reactions(t) for t in published if t.segments],
        thread_activity=[thread_activity(t) for t in published],
        activity_by_date=activity_by_date(published, now),
        computed_at=now,
    )


def reduce_daily_reactions(
    threads: Sequence[Thread],
    emoji: Optional[Emoji] = None,
    now: Optional[datetime] = None,
) -> List[DailyReactions]:
    """Daily reaction totals sorted by date, optionally for one emoji."""
    daily = activity_by_date(threads, _resolve_now(now), emoji)
    return [DailyReactions(date=day, total_reactions=total) for day, total in sorted(daily.items())]
