"""
threadspire/features/threads/service.py
Thread lifecycle: create/fork, edit, publish-by-copy, delete with reference
cleanup, and the read side (single thread, listings, forks).

Publishing a draft never flips it into the published thread. A new published
document is created with `supersedes = draft.thread_id` and the draft is then
marked published in place so it drops out of draft listings.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from threadspire.core.errors import NotFoundError, PermissionError, ValidationError
from threadspire.core.logging import log_event
from threadspire.core.metrics import thread_mutations_total
from threadspire.core.pagination import page_count, resolve_page
from threadspire.core.tracing import start_span
from threadspire.features.events.bus import ThreadDeleted, ThreadUnpublished, publish
from threadspire.features.store import get_store
from threadspire.features.store.base import Filter
from threadspire.features.store.retry import retry_on_conflict
from threadspire.features.users.service import get_or_create_user, get_user, require_caller
from threadspire.models.thread import (
    CreateThreadRequest,
    PublishResult,
    RelatedVersions,
    Segment,
    SegmentInput,
    Thread,
    ThreadPage,
    ThreadStatus,
    ThreadView,
    UpdateThreadRequest,
    VersionRef,
)

SORTS = {
    "newest": [("created_at", True)],
    "bookmarks": [("bookmark_count", True), ("created_at", True)],
    "forks": [("fork_count", True), ("created_at", True)],
}
TAG_MODES = ("any", "all")
NEWEST_FIRST = SORTS["newest"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_status(value: Optional[str]) -> Optional[ThreadStatus]:
    """None/blank -> None; anything but draft|published -> ValidationError."""
    if value is None or not str(value).strip():
        return None
    try:
        return ThreadStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError("Invalid status. Use 'draft' or 'published'.")


def normalize_tags(tags: Optional[List[str]]) -> List[str]:
    """Trim, drop blanks, de-duplicate keeping first occurrence."""
    seen: List[str] = []
    for tag in tags or []:
        tag = (tag or "").strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def build_segments(
    inputs: List[SegmentInput],
    existing: Optional[List[Segment]] = None,
    now: Optional[datetime] = None,
) -> List[Segment]:
    """
    Turn submitted segments into stored ones.

    A segment_id matching one of `existing` keeps that segment's created_at and
    reactions; anything else becomes a new segment.
    """
    now = now or _now()
    previous: Dict[str, Segment] = {s.segment_id: s for s in existing or []}
    built: List[Segment] = []
    used_ids = set()
    for position, item in enumerate(inputs):
        content = (item.content or "").strip()
        if not content:
            raise ValidationError(f"Segment {position + 1} content is required")

        prior = previous.get(item.segment_id) if item.segment_id else None
        if prior is not None and prior.segment_id not in used_ids:
            segment = prior.model_copy(update={"title": (item.title or "").strip(), "content": content})
        else:
            segment = Segment(
                segment_id=str(uuid.uuid4()),
                title=(item.title or "").strip(),
                content=content,
                created_at=now,
            )
        used_ids.add(segment.segment_id)
        built.append(segment)
    return built


def _copy_segments(segments: List[Segment]) -> List[Segment]:
    """Published copies start with no reactions."""
    return [s.model_copy(update={"reactions_by_user": {}}) for s in segments]


def _get_or_404(thread_id: str) -> Thread:
    thread = get_store().threads.find_by_id(thread_id)
    if thread is None:
        raise NotFoundError("Thread not found")
    return thread


def _require_author(thread: Thread, caller_id: Optional[str], action: str) -> str:
    caller_id = require_caller(caller_id, action)
    if thread.author_id != caller_id:
        raise PermissionError(f"You do not have permission to {action}")
    return caller_id


# ============================================================================
# Mutations
# ============================================================================


def create_thread(caller_id: Optional[str], request: CreateThreadRequest) -> Thread:
    """
    Create a thread, or fork one when `original_thread_id` is given.

    Raises:
        PermissionError: anonymous caller, or forking a draft
        ValidationError: blank title, bad status, empty segment content
        NotFoundError: fork source missing
    """
    caller_id = require_caller(caller_id, "create a thread")
    with start_span("threads.create", {"user_id": caller_id, "fork_of": request.original_thread_id}):
        title = (request.title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        status = parse_status(request.status) or ThreadStatus.DRAFT
        now = _now()
        segments = build_segments(request.segments, now=now)
        tags = normalize_tags(request.tags)

        threads = get_store().threads
        source: Optional[Thread] = None
        if request.original_thread_id:
            source = threads.find_by_id(request.original_thread_id)
            if source is None:
                raise NotFoundError("Original thread not found")
            if not source.is_published:
                raise PermissionError("Cannot fork a draft thread")

        get_or_create_user(caller_id)
        thread = threads.insert(Thread(
            thread_id=str(uuid.uuid4()),
            title=title,
            author_id=caller_id,
            segments=segments,
            tags=tags,
            status=status,
            original_thread_id=source.thread_id if source else None,
            original_author_id=source.author_id if source else None,
            created_at=now,
            updated_at=now,
        ))

        if source is not None:
            if threads.increment(source.thread_id, "fork_count", 1) is None:
                log_event(
                    "warning",
                    "thread.fork_source_vanished",
                    user_id=caller_id,
                    thread_id=source.thread_id,
                    event_type="thread.fork",
                )
            thread_mutations_total.inc(labels={"type": "fork"})
        else:
            thread_mutations_total.inc(labels={"type": "create"})

        log_event(
            "info",
            "thread.created",
            user_id=caller_id,
            thread_id=thread.thread_id,
            event_type="thread.fork" if source else "thread.create",
            extra={"status": thread.status.value, "segments": len(segments)},
        )
        return thread


def update_thread(thread_id: str, caller_id: Optional[str], request: UpdateThreadRequest) -> PublishResult:
    """
    Edit a thread, or publish a draft.

    Draft + status=published creates a new published thread superseding the
    draft, then marks the draft published. Every other change is applied in
    place. Published + status=draft zeroes bookmark_count and drops the thread
    from every user's bookmarks and collections.
    """
    with start_span("threads.update", {"thread_id": thread_id, "user_id": caller_id}):
        thread = _get_or_404(thread_id)
        caller_id = _require_author(thread, caller_id, "update this thread")

        status = parse_status(request.status)
        title = (request.title or "").strip()
        tags = normalize_tags(request.tags) if request.tags is not None else None
        now = _now()
        segments = (
            build_segments(request.segments, existing=thread.segments, now=now)
            if request.segments is not None
            else None
        )

        if thread.status == ThreadStatus.DRAFT and status == ThreadStatus.PUBLISHED:
            return _publish_draft(thread, caller_id, title, segments, tags, now)

        threads = get_store().threads
        state = {}

        def _apply() -> Thread:
            current = _get_or_404(thread_id)
            changes = {"updated_at": _now()}
            state["unpublished"] = current.is_published and status == ThreadStatus.DRAFT
            if title:
                changes["title"] = title
            if request.segments is not None:
                changes["segments"] = build_segments(request.segments, existing=current.segments, now=now)
            if tags is not None:
                changes["tags"] = tags
            if status is not None:
                changes["status"] = status
            if state["unpublished"]:
                changes["bookmark_count"] = 0
            return threads.save(current.model_copy(update=changes))

        updated = retry_on_conflict(_apply, collection=threads.name)
        if state["unpublished"]:
            publish(ThreadUnpublished(
                thread_id=thread_id,
                author_id=updated.author_id,
                unpublished_at=_now(),
            ))
        thread_mutations_total.inc(labels={"type": "update"})
        log_event(
            "info",
            "thread.updated",
            user_id=caller_id,
            thread_id=thread_id,
            event_type="thread.update",
            extra={"status": updated.status.value},
        )
        return PublishResult(thread=updated)


def _publish_draft(
    draft: Thread,
    caller_id: str,
    title: str,
    segments: Optional[List[Segment]],
    tags: Optional[List[str]],
    now: datetime,
) -> PublishResult:
    threads = get_store().threads
    published = threads.insert(Thread(
        thread_id=str(uuid.uuid4()),
        title=title or draft.title,
        author_id=draft.author_id,
        segments=_copy_segments(segments if segments is not None else draft.segments),
        tags=tags if tags is not None else list(draft.tags),
        status=ThreadStatus.PUBLISHED,
        original_thread_id=draft.original_thread_id,
        original_author_id=draft.original_author_id,
        supersedes=draft.thread_id,
        created_at=now,
        updated_at=now,
    ))

    def _flip() -> Optional[Thread]:
        current = threads.find_by_id(draft.thread_id)
        if current is None:
            return None
        return threads.save(current.model_copy(update={
            "status": ThreadStatus.PUBLISHED,
            "updated_at": _now(),
        }))

    flipped = retry_on_conflict(_flip, collection=threads.name)
    thread_mutations_total.inc(labels={"type": "publish"})
    log_event(
        "info",
        "thread.published",
        user_id=caller_id,
        thread_id=published.thread_id,
        event_type="thread.publish",
        extra={"draft_id": draft.thread_id},
    )
    return PublishResult(thread=published, draft_thread=flipped)


def delete_thread(thread_id: str, caller_id: Optional[str]) -> str:
    """
    Delete a thread (author only).

    - published threads superseding it lose their `supersedes` pointer
    - if it is a draft, published threads naming it as `original_thread_id`
      have that cleared; `original_author_id` stays for attribution
    - forks of a published thread keep their dangling reference
    - bookmarks and collections are purged through the ThreadDeleted event
    """
    with start_span("threads.delete", {"thread_id": thread_id, "user_id": caller_id}):
        thread = _get_or_404(thread_id)
        caller_id = _require_author(thread, caller_id, "delete this thread")
        threads = get_store().threads

        def _unlink(field: str):
            def _mutate(doc: Thread) -> Thread:
                return doc.model_copy(update={field: None, "updated_at": _now()})
            return _mutate

        superseding = threads.update_where(
            {"supersedes": thread_id, "status": ThreadStatus.PUBLISHED},
            _unlink("supersedes"),
        )
        detached = 0
        if thread.status == ThreadStatus.DRAFT:
            detached = threads.update_where(
                {"original_thread_id": thread_id, "status": ThreadStatus.PUBLISHED},
                _unlink("original_thread_id"),
            )

        publish(ThreadDeleted(
            thread_id=thread_id,
            author_id=thread.author_id,
            status=thread.status.value,
            deleted_at=_now(),
        ))

        threads.delete_by_id(thread_id)
        thread_mutations_total.inc(labels={"type": "delete"})
        log_event(
            "info",
            "thread.deleted",
            user_id=caller_id,
            thread_id=thread_id,
            event_type="thread.delete",
            extra={"status": thread.status.value, "superseding_cleared": superseding, "forks_detached": detached},
        )
        return thread_id


# ============================================================================
# Reads
# ============================================================================


def get_related_versions(thread: Thread) -> Optional[RelatedVersions]:
    """
    Draft/published counterparts of a thread.

    Published: the draft it supersedes (or, for older documents, the
    original_thread_id). Draft: the newest published thread built from it.
    """
    threads = get_store().threads
    if thread.is_published:
        ref_id = thread.supersedes or thread.original_thread_id
        if not ref_id:
            return None
        ref = threads.find_by_id(ref_id)
        return RelatedVersions(draft_version=VersionRef(thread_id=ref_id, title=ref.title if ref else None))

    successor = threads.find_one(
        {
            "status": ThreadStatus.PUBLISHED,
            "any_of": [{"supersedes": thread.thread_id}, {"original_thread_id": thread.thread_id}],
        },
        sort=NEWEST_FIRST,
    )
    if successor is None:
        return None
    return RelatedVersions(published_version=VersionRef(thread_id=successor.thread_id, title=successor.title))


def get_thread(thread_id: str, caller_id: Optional[str] = None) -> ThreadView:
    """Drafts are visible to their author only."""
    thread = _get_or_404(thread_id)
    if not thread.is_published and thread.author_id != caller_id:
        raise PermissionError("This thread is a draft and only visible to its author")

    is_bookmarked = False
    if caller_id and thread.is_published:
        user = get_user(caller_id)
        is_bookmarked = bool(user and user.has_bookmarked(thread_id))

    return ThreadView(
        thread=thread,
        is_bookmarked=is_bookmarked,
        related_versions=get_related_versions(thread),
    )


def _page(filter: Filter, sort, page: Optional[int], limit: Optional[int]) -> ThreadPage:
    page, limit, skip = resolve_page(page, limit)
    threads = get_store().threads
    total = threads.count_matching(filter)
    items = threads.find_many(filter, sort=sort, skip=skip, limit=limit)
    return ThreadPage(items=items, total=total, page=page, pages=page_count(total, limit), limit=limit)


def list_threads(
    caller_id: Optional[str] = None,
    status: Optional[str] = None,
    tags: Optional[List[str]] = None,
    tag_mode: Optional[str] = None,
    sort: Optional[str] = None,
    page: Optional[int] = 1,
    limit: Optional[int] = None,
) -> ThreadPage:
    """
    Explore listing.

    Anonymous callers see published threads only. Signed-in callers get
    status=draft -> own drafts, status=published -> all published, no status
    -> published plus own drafts.
    """
    requested = parse_status(status)
    sort_key = (sort or "newest").strip().lower()
    if sort_key not in SORTS:
        raise ValidationError("Invalid sort. Use 'newest', 'bookmarks' or 'forks'.")
    mode = (tag_mode or "any").strip().lower()
    if mode not in TAG_MODES:
        raise ValidationError("Invalid tag_mode. Use 'any' or 'all'.")

    filter: Filter = {}
    if not caller_id:
        filter["status"] = ThreadStatus.PUBLISHED
    elif requested == ThreadStatus.DRAFT:
        filter.update({"author_id": caller_id, "status": ThreadStatus.DRAFT})
    elif requested == ThreadStatus.PUBLISHED:
        filter["status"] = ThreadStatus.PUBLISHED
    else:
        filter["any_of"] = [
            {"status": ThreadStatus.PUBLISHED},
            {"author_id": caller_id, "status": ThreadStatus.DRAFT},
        ]

    wanted = normalize_tags(tags)
    if wanted:
        filter["tags__all" if mode == "all" else "tags__in"] = wanted

    with start_span("threads.list", {"user_id": caller_id, "sort": sort_key}):
        return _page(filter, SORTS[sort_key], page, limit)


def list_user_threads(
    user_id: str,
    caller_id: Optional[str] = None,
    status: Optional[str] = None,
    page: Optional[int] = 1,
    limit: Optional[int] = None,
) -> ThreadPage:
    """A user's threads, newest first. Others only ever see published ones."""
    filter: Filter = {"author_id": user_id}
    if caller_id and caller_id == user_id:
        try:
            requested = parse_status(status)
        except ValidationError:
            requested = None
        if requested is not None:
            filter["status"] = requested
    else:
        filter["status"] = ThreadStatus.PUBLISHED
    return _page(filter, NEWEST_FIRST, page, limit)


def list_forks(thread_id: str, page: Optional[int] = 1, limit: Optional[int] = None) -> ThreadPage:
    """Published forks of a thread, newest first."""
    _get_or_404(thread_id)
    return _page(
        {"original_thread_id": thread_id, "status": ThreadStatus.PUBLISHED},
        NEWEST_FIRST,
        page,
        limit,
    )
