"""
threadspire/models/analytics.py
Engagement analytics read models (bookmarks, forks, reactions, daily activity).
"""

from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Optional, List, Dict


class MostForkedThread(BaseModel):
    """Author's thread with the highest fork count (only when > 0)"""

    model_config = ConfigDict(frozen=True)

    thread_id: str
    title: str
    fork_count: int = Field(ge=1)
    publish_date: datetime


class ForkSummary(BaseModel):
    """One thread forked from one of the user's threads"""

    model_config = ConfigDict(frozen=True)

    fork_id: str
    title: str
    author: str = Field(description="Fork author's name, 'Anonymous' when unknown")
    created_at: datetime


class SegmentReactions(BaseModel):
    model_config = ConfigDict(frozen=True)

    segment_id: str
    position: int = Field(ge=0, description="0-indexed position in thread")
    content: str = Field(description="First 50 characters, '...' appended when truncated")
    reaction_counts: Dict[str, int]
    total_reactions: int = Field(ge=0)


class TopSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    segment_id: str
    position: int = Field(ge=0)
    content: str
    total_reactions: int = Field(ge=1)


class ThreadReactions(BaseModel):
    """Per-segment reaction breakdown for one published thread"""

    model_config = ConfigDict(frozen=True)

    thread_id: str
    title: str
    segments: List[SegmentReactions]
    top_reacted_segment: Optional[TopSegment] = None


class ThreadActivitySummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    thread_id: str
    title: str
    bookmarks: int = Field(ge=0)
    forks: int = Field(ge=0)
    reactions: int = Field(ge=0)
    created_at: datetime


class UserAnalytics(BaseModel):
    """Engagement summary for one author (self access only)"""

    model_config = ConfigDict(frozen=True)

    user_id: str
    total_threads: int = Field(ge=0)
    published_threads: int = Field(ge=0)
    draft_threads: int = Field(ge=0)
    total_bookmarks: int = Field(ge=0, description="Bookmarks the user has made")
    total_bookmarks_received: int = Field(ge=0, description="Sum of bookmark_count over the user's threads")
    total_forks: int = Field(ge=0)
    most_forked_thread: Optional[MostForkedThread] = None
    forks_by_thread: Dict[str, List[ForkSummary]] = Field(default_factory=dict)
    reaction_counts: Dict[str, int]
    threads_with_reactions: List[ThreadReactions] = Field(default_factory=list)
    thread_activity: List[ThreadActivitySummary] = Field(default_factory=list)
    activity_by_date: Dict[str, int] = Field(default_factory=dict, description="YYYY-MM-DD -> reactions")
    computed_at: datetime


class DailyReactions(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str = Field(description="YYYY-MM-DD")
    total_reactions: int = Field(ge=0)
