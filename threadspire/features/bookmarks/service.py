"""
threadspire/features/bookmarks/service.py
Bookmarks and named collections.

Invariants kept here (storage does not enforce them):
- a thread sits in at most one collection per user
- collection membership implies the thread is bookmarked
- un-bookmarking removes the thread from every collection
"""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from threadspire.core.errors import AppError, ConflictError, NotFoundError, PermissionError, ValidationError
from threadspire.core.logging import log_event
from threadspire.core.metrics import bookmarks_total
from threadspire.core.pagination import page_count, resolve_page
from threadspire.core.tracing import start_span
from threadspire.features.events.bus import ThreadDeleted, ThreadUnpublished
from threadspire.features.store import get_store
from threadspire.features.store.retry import retry_on_conflict
from threadspire.features.users.service import get_or_create_user, get_user, require_caller
from threadspire.models.engagement import BookmarkResult
from threadspire.models.thread import ThreadPage, ThreadStatus
from threadspire.models.user import Collection, CollectionThread, CollectionView, User


def _without(ids: List[str], thread_id: str) -> List[str]:
    return [i for i in ids if i != thread_id]


def _replace_collection(user: User, updated: Collection) -> List[Collection]:
    return [updated if c.name == updated.name else c for c in user.collections]


def _mutate_user(user_id: str, mutate: Callable[[User], User]) -> User:
    """Re-read, mutate and compare-and-set the user until the save wins."""
    users = get_store().users

    def _apply() -> User:
        current = users.find_by_id(user_id)
        if current is None:
            raise NotFoundError("User not found")
        changed = mutate(current)
        if changed is current:
            return current
        return users.save(changed.model_copy(update={"updated_at": datetime.now(timezone.utc)}))

    return retry_on_conflict(_apply, collection=users.name)


# ============================================================================
# Bookmarks
# ============================================================================


def toggle_bookmark(thread_id: str, caller_id: Optional[str]) -> BookmarkResult:
    """
    Bookmark or un-bookmark a published thread.

    Un-bookmarking also pulls the thread out of the caller's collections.
    The thread's bookmark_count moves by an atomic increment floored at 0.
    """
    caller_id = require_caller(caller_id, "bookmark threads")
    threads = get_store().threads
    thread = threads.find_by_id(thread_id)
    if thread is None:
        raise NotFoundError("Thread not found")
    if not thread.is_published:
        raise PermissionError("You cannot bookmark draft threads")

    get_or_create_user(caller_id)
    state = {}

    def _toggle(user: User) -> User:
        was_bookmarked = user.has_bookmarked(thread_id)
        state["was_bookmarked"] = was_bookmarked
        if was_bookmarked:
            return user.model_copy(update={
                "bookmarks": _without(user.bookmarks, thread_id),
                "collections": [
                    c.model_copy(update={"threads": _without(c.threads, thread_id)})
                    for c in user.collections
                ],
            })
        return user.model_copy(update={"bookmarks": user.bookmarks + [thread_id]})

    with start_span("bookmarks.toggle", {"thread_id": thread_id, "user_id": caller_id}):
        _mutate_user(caller_id, _toggle)
        is_bookmarked = not state["was_bookmarked"]
        updated = threads.increment(thread_id, "bookmark_count", 1 if is_bookmarked else -1, minimum=0)

    action = "added" if is_bookmarked else "removed"
    bookmarks_total.inc(labels={"action": action})
    log_event(
        "info",
        "bookmark.toggled",
        user_id=caller_id,
        thread_id=thread_id,
        event_type="bookmark." + action,
    )
    return BookmarkResult(
        is_bookmarked=is_bookmarked,
        bookmark_count=updated.bookmark_count if updated else 0,
    )


def list_bookmarked_threads(caller_id: Optional[str], page: Optional[int] = 1, limit: Optional[int] = None) -> ThreadPage:
    """
    The caller's bookmarked threads that still exist, newest first.

    Only published threads (or the caller's own) are returned, so a thread
    moved back to draft never reaches another reader through a stale bookmark.
    """
    caller_id = require_caller(caller_id, "view bookmarks")
    page, limit, skip = resolve_page(page, limit)
    user = get_user(caller_id)
    if user is None or not user.bookmarks:
        return ThreadPage(items=[], total=0, page=page, pages=0, limit=limit)

    threads = get_store().threads
    filter = {
        "thread_id__in": list(user.bookmarks),
        "any_of": [{"status": ThreadStatus.PUBLISHED}, {"author_id": caller_id}],
    }
    total = threads.count_matching(filter)
    items = threads.find_many(filter, sort=[("created_at", True)], skip=skip, limit=limit)
    return ThreadPage(items=items, total=total, page=page, pages=page_count(total, limit), limit=limit)


# ============================================================================
# Collections
# ============================================================================


def create_collection(caller_id: Optional[str], name: str) -> List[Collection]:
    caller_id = require_caller(caller_id, "create collections")
    name = (name or "").strip()
    if not name:
        raise ValidationError("Collection name is required")

    get_or_create_user(caller_id)

    def _create(user: User) -> User:
        if user.collection(name) is not None:
            raise ConflictError("Collection with this name already exists")
        return user.model_copy(update={"collections": user.collections + [Collection(name=name)]})

    user = _mutate_user(caller_id, _create)
    log_event("info", "collection.created", user_id=caller_id, event_type="collection.create", extra={"collection": name})
    return user.collections


def add_to_collection(caller_id: Optional[str], collection_name: str, thread_id: str) -> Collection:
    """
    Raises:
        NotFoundError: collection or thread missing
        ConflictError: already in this or another collection, or not bookmarked
    """
    caller_id = require_caller(caller_id, "manage collections")
    collection_name = (collection_name or "").strip()
    user = get_user(caller_id)
    if user is None or user.collection(collection_name) is None:
        raise NotFoundError("Collection not found")
    if get_store().threads.find_by_id(thread_id) is None:
        raise NotFoundError("Thread not found")

    def _add(current: User) -> User:
        collection = current.collection(collection_name)
        if collection is None:
            raise NotFoundError("Collection not found")
        if thread_id in collection.threads:
            raise ConflictError("Thread already in collection")
        if current.collection_containing(thread_id) is not None:
            raise ConflictError(
                "Thread already exists in another collection. Please remove it from that collection first."
            )
        if not current.has_bookmarked(thread_id):
            raise ConflictError("Bookmark the thread before adding it to a collection")
        updated = collection.model_copy(update={"threads": collection.threads + [thread_id]})
        return current.model_copy(update={"collections": _replace_collection(current, updated)})

    user = _mutate_user(caller_id, _add)
    log_event(
        "info",
        "collection.thread_added",
        user_id=caller_id,
        thread_id=thread_id,
        event_type="collection.add",
        extra={"collection": collection_name},
    )
    return user.collection(collection_name)


def remove_from_collection(caller_id: Optional[str], collection_name: str, thread_id: str) -> Collection:
    caller_id = require_caller(caller_id, "manage collections")
    collection_name = (collection_name or "").strip()

    def _remove(current: User) -> User:
        collection = current.collection(collection_name)
        if collection is None:
            raise NotFoundError("Collection not found")
        if thread_id not in collection.threads:
            raise NotFoundError("Thread not in collection")
        updated = collection.model_copy(update={"threads": _without(collection.threads, thread_id)})
        return current.model_copy(update={"collections": _replace_collection(current, updated)})

    if get_user(caller_id) is None:
        raise NotFoundError("Collection not found")
    user = _mutate_user(caller_id, _remove)
    log_event(
        "info",
        "collection.thread_removed",
        user_id=caller_id,
        thread_id=thread_id,
        event_type="collection.remove",
        extra={"collection": collection_name},
    )
    return user.collection(collection_name)


def get_collections(user_id: str, caller_id: Optional[str]) -> List[CollectionView]:
    """
    The owner's collections with each thread's title and author name.

    Collections are private: anyone but the owner gets an empty list. Ids of
    threads that no longer exist are skipped.
    """
    if not caller_id or caller_id != user_id:
        return []
    user = get_user(user_id)
    if user is None or not user.collections:
        return []

    thread_ids = user.collected_thread_ids
    found = get_store().threads.find_many({"thread_id__in": thread_ids}) if thread_ids else []
    by_id = {t.thread_id: t for t in found}

    author_names: Dict[str, str] = {}
    for author_id in {t.author_id for t in found}:
        author = get_user(author_id)
        author_names[author_id] = (
            author.display_name if author is not None else User.normalized_display_name(author_id)
        )

    return [
        CollectionView(
            name=collection.name,
            threads=[
                CollectionThread(
                    thread_id=thread_id,
                    title=by_id[thread_id].title,
                    author_id=by_id[thread_id].author_id,
                    author=author_names[by_id[thread_id].author_id],
                )
                for thread_id in collection.threads
                if thread_id in by_id
            ],
        )
        for collection in user.collections
    ]


# ============================================================================
# Deletion cascade
# ============================================================================


def purge_thread_references(thread_id: str) -> int:
    """
    Pull a thread id out of every user's bookmarks and collections.

    Best effort per user: a user that cannot be updated is logged and
    skipped. Returns the number of users modified.
    """
    users = get_store().users
    affected = users.find_many({
        "any_of": [
            {"bookmarks__contains": thread_id},
            {"collected_thread_ids__contains": thread_id},
        ]
    })

    def _purge(user: User) -> User:
        if thread_id not in user.bookmarks and thread_id not in user.collected_thread_ids:
            return user
        return user.model_copy(update={
            "bookmarks": _without(user.bookmarks, thread_id),
            "collections": [
                c.model_copy(update={"threads": _without(c.threads, thread_id)})
                for c in user.collections
            ],
        })

    modified = 0
    for user in affected:
        try:
            _mutate_user(user.user_id, _purge)
            modified += 1
        except AppError as exc:
            log_event(
                "warning",
                "bookmark.purge_failed",
                user_id=user.user_id,
                thread_id=thread_id,
                event_type="thread.delete.cascade",
                error_code=exc.code,
            )

    log_event(
        "info",
        "bookmark.purged",
        thread_id=thread_id,
        event_type="thread.delete.cascade",
        extra={"users_modified": modified},
    )
    return modified


def handle_thread_deleted(event: ThreadDeleted) -> None:
    purge_thread_references(event.thread_id)


def handle_thread_unpublished(event: ThreadUnpublished) -> None:
    # Drafts cannot be bookmarked, so existing bookmarks go too
    purge_thread_references(event.thread_id)
