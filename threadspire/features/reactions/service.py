"""
threadspire/features/reactions/service.py
Per-segment emoji reactions. A user holds zero or one active reaction per
segment: reacting with the active emoji clears it, any other emoji moves it.
"""

from datetime import datetime, timezone
from typing import Optional, Tuple

from threadspire.core.errors import NotFoundError, PermissionError, ValidationError
from threadspire.core.logging import log_event
from threadspire.core.metrics import reactions_total
from threadspire.core.tracing import start_span
from threadspire.features.store import get_store
from threadspire.features.store.retry import retry_on_conflict
from threadspire.features.users.service import require_caller
from threadspire.models.engagement import ReactionResult
from threadspire.models.thread import Emoji, Segment, Thread


def toggle_reaction(segment: Segment, user_id: str, emoji: Emoji) -> Tuple[Segment, Optional[Emoji], str]:
    """
    Pure toggle on one segment.

    Returns:
        (segment, active_reaction, action) where action is added|moved|removed
    """
    reactions = dict(segment.reactions_by_user)
    previous = reactions.pop(user_id, None)
    if previous is not None and Emoji(previous) == emoji:
        action, active = "removed", None
    else:
        reactions[user_id] = emoji
        action, active = ("moved" if previous is not None else "added"), emoji
    return segment.model_copy(update={"reactions_by_user": reactions}), active, action


def react(thread_id: str, segment_id: str, emoji: str, caller_id: Optional[str]) -> ReactionResult:
    """
    Toggle `caller_id`'s reaction on one segment of a published thread.

    Raises:
        ValidationError: not one of the five emoji
        NotFoundError: thread or segment missing
        PermissionError: anonymous caller or draft thread
        ConflictError: lost the save race on every retry
    """
    parsed = Emoji.parse(emoji)
    if parsed is None:
        raise ValidationError("Invalid reaction type")
    caller_id = require_caller(caller_id, "react")

    threads = get_store().threads
    outcome = {}

    def _apply() -> Thread:
        thread = threads.find_by_id(thread_id)
        if thread is None:
            raise NotFoundError("Thread not found")
        if not thread.is_published:
            raise PermissionError("You cannot react to draft threads")
        segment = thread.find_segment(segment_id)
        if segment is None:
            raise NotFoundError("Segment not found")

        updated, active, action = toggle_reaction(segment, caller_id, parsed)
        outcome.update(active=active, action=action)
        segments = [updated if s.segment_id == segment_id else s for s in thread.segments]
        return threads.save(thread.model_copy(update={
            "segments": segments,
            "updated_at": datetime.now(timezone.utc),
        }))

    with start_span("reactions.react", {"thread_id": thread_id, "segment_id": segment_id, "user_id": caller_id}):
        thread = retry_on_conflict(_apply, collection=threads.name)

    reactions_total.inc(labels={"action": outcome["action"]})
    log_event(
        "info",
        "reaction.toggled",
        user_id=caller_id,
        thread_id=thread_id,
        event_type="reaction." + outcome["action"],
        extra={"segment_id": segment_id, "emoji": parsed.value},
    )
    return ReactionResult(thread=thread, segment_id=segment_id, active_reaction=outcome["active"])
