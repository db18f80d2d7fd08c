"""
threadspire/models/engagement.py
Results of reaction and bookmark toggles.
"""

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

from threadspire.models.thread import Emoji, Thread


class ReactionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    thread: Thread
    segment_id: str
    active_reaction: Optional[Emoji] = Field(default=None, description="None when the toggle cleared the reaction")


class BookmarkResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_bookmarked: bool
    bookmark_count: int = Field(ge=0)


class ReactRequest(BaseModel):
    """Body of a reaction toggle; emoji must be one of the five recognized values."""

    emoji: str = ""
