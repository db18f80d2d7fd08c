"""
threadspire/models/thread.py
Thread documents: ordered segments, per-segment reactions, fork lineage.
"""

from pydantic import BaseModel, Field, ConfigDict, computed_field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict


class ThreadStatus(str, Enum):
    """Lifecycle: draft -> published (publish creates a new document)"""

    DRAFT = "draft"
    PUBLISHED = "published"


class Emoji(str, Enum):
    """The five recognized segment reactions, in display order."""

    MIND_BLOWN = "🤯"
    LIGHTBULB = "💡"
    RELIEVED = "😌"
    FIRE = "🔥"
    HEART_HANDS = "🫶"

    @classmethod
    def parse(cls, value: str) -> Optional["Emoji"]:
        for emoji in cls:
            if emoji.value == value:
                return emoji
        return None


EMOJI_VALUES: List[str] = [e.value for e in Emoji]


class ReactionBucket(BaseModel):
    """Derived view of one emoji on one segment: count == len(users)."""

    model_config = ConfigDict(frozen=True)

    count: int = Field(ge=0)
    users: List[str] = Field(default_factory=list)


class Segment(BaseModel):
    """One block of content within a thread, independently reactable.

    `reactions_by_user` is the source of truth: each user holds at most one
    active reaction per segment. The five buckets are computed from it.
    """

    model_config = ConfigDict(frozen=True)

    segment_id: str = Field(description="UUID, unique within the thread")
    title: str = ""
    content: str = Field(min_length=1)
    created_at: datetime
    reactions_by_user: Dict[str, Emoji] = Field(default_factory=dict)

    @computed_field
    @property
    def reactions(self) -> Dict[str, ReactionBucket]:
        users_by_emoji: Dict[str, List[str]] = {value: [] for value in EMOJI_VALUES}
        for user_id, emoji in self.reactions_by_user.items():
            users_by_emoji[Emoji(emoji).value].append(user_id)
        return {
            value: ReactionBucket(count=len(users), users=sorted(users))
            for value, users in users_by_emoji.items()
        }

    @computed_field
    @property
    def total_reactions(self) -> int:
        return len(self.reactions_by_user)

    def reaction_counts(self) -> Dict[str, int]:
        return {emoji: bucket.count for emoji, bucket in self.reactions.items()}

    def active_reaction(self, user_id: str) -> Optional[Emoji]:
        emoji = self.reactions_by_user.get(user_id)
        return Emoji(emoji) if emoji is not None else None


class Thread(BaseModel):
    """Authored, ordered sequence of segments with a lifecycle status"""

    model_config = ConfigDict(frozen=True)

    thread_id: str = Field(description="UUID")
    title: str = Field(min_length=1)
    author_id: str
    segments: List[Segment] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    status: ThreadStatus = Field(default=ThreadStatus.DRAFT)
    bookmark_count: int = Field(default=0, ge=0)
    fork_count: int = Field(default=0, ge=0)
    original_thread_id: Optional[str] = Field(default=None, description="Fork source (published at fork time)")
    original_author_id: Optional[str] = Field(default=None, description="Author of the fork source")
    supersedes: Optional[str] = Field(default=None, description="Draft this published thread was published from")
    created_at: datetime
    updated_at: datetime
    version: int = Field(default=1, ge=1)

    @computed_field
    @property
    def total_reactions(self) -> int:
        return sum(segment.total_reactions for segment in self.segments)

    @property
    def is_published(self) -> bool:
        return self.status == ThreadStatus.PUBLISHED

    def find_segment(self, segment_id: str) -> Optional[Segment]:
        for segment in self.segments:
            if segment.segment_id == segment_id:
                return segment
        return None


class SegmentInput(BaseModel):
    """Segment as submitted by an author. A known segment_id keeps its reactions."""

    segment_id: Optional[str] = None
    title: Optional[str] = ""
    content: str = ""


class CreateThreadRequest(BaseModel):
    """Request to create a thread (optionally a fork)"""

    title: str = ""
    segments: List[SegmentInput] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    status: Optional[str] = Field(default=None, description="'draft' (default) | 'published'")
    original_thread_id: Optional[str] = Field(default=None, description="Published thread being forked")


class UpdateThreadRequest(BaseModel):
    """Edit or publish a thread. Omitted fields are left unchanged."""

    title: Optional[str] = None
    segments: Optional[List[SegmentInput]] = None
    tags: Optional[List[str]] = None
    status: Optional[str] = None


class VersionRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    thread_id: str
    title: Optional[str] = None


class RelatedVersions(BaseModel):
    """Draft/published counterparts of a thread (best-effort)"""

    model_config = ConfigDict(frozen=True)

    draft_version: Optional[VersionRef] = None
    published_version: Optional[VersionRef] = None


class PublishResult(BaseModel):
    """Outcome of update_thread; draft_thread is set only when a draft was published"""

    model_config = ConfigDict(frozen=True)

    thread: Thread
    draft_thread: Optional[Thread] = None

    @property
    def published_from_draft(self) -> bool:
        return self.draft_thread is not None


class ThreadView(BaseModel):
    model_config = ConfigDict(frozen=True)

    thread: Thread
    is_bookmarked: bool = False
    related_versions: Optional[RelatedVersions] = None


class ThreadPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: List[Thread]
    total: int = Field(ge=0)
    page: int = Field(ge=1)
    pages: int = Field(ge=0)
    limit: int = Field(ge=1)
