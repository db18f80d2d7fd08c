"""
threadspire/tests/test_bookmarks_collections.py
Bookmark toggles and the one-collection-per-thread rules.
"""

import pytest

from threadspire.core.errors import ConflictError, NotFoundError, PermissionError, ValidationError
from threadspire.core.metrics import bookmarks_total
from threadspire.features.bookmarks.service import (
    add_to_collection,
    create_collection,
    get_collections,
    list_bookmarked_threads,
    purge_thread_references,
    remove_from_collection,
    toggle_bookmark,
)
from threadspire.features.store import get_store
from threadspire.features.threads.service import update_thread
from threadspire.features.users.service import update_profile
from threadspire.models.thread import SegmentInput, ThreadStatus, UpdateThreadRequest
from threadspire.models.user import UpdateProfileRequest


def _user(user_id):
    return get_store().users.find_by_id(user_id)


class TestToggleBookmark:
    def test_toggle_twice_restores_state(self, published_thread):
        first = toggle_bookmark(published_thread.thread_id, "bob")
        assert first.is_bookmarked is True
        assert first.bookmark_count == 1
        assert _user("bob").bookmarks == [published_thread.thread_id]

        second = toggle_bookmark(published_thread.thread_id, "bob")
        assert second.is_bookmarked is False
        assert second.bookmark_count == published_thread.bookmark_count
        assert _user("bob").bookmarks == []

    def test_counts_across_users(self, published_thread):
        toggle_bookmark(published_thread.thread_id, "bob")
        result = toggle_bookmark(published_thread.thread_id, "carol")
        assert result.bookmark_count == 2

    def test_unbookmark_removes_from_collections(self, published_thread):
        toggle_bookmark(published_thread.thread_id, "bob")
        create_collection("bob", "Keep")
        add_to_collection("bob", "Keep", published_thread.thread_id)

        toggle_bookmark(published_thread.thread_id, "bob")

        assert _user("bob").collection("Keep").threads == []

    def test_count_never_negative(self, published_thread):
        toggle_bookmark(published_thread.thread_id, "bob")
        get_store().threads.increment(published_thread.thread_id, "bookmark_count", -5, minimum=0)
        result = toggle_bookmark(published_thread.thread_id, "bob")
        assert result.bookmark_count == 0

    def test_draft_not_bookmarkable(self, make_thread):
        draft = make_thread()
        with pytest.raises(PermissionError):
            toggle_bookmark(draft.thread_id, "bob")

    def test_missing_thread(self):
        with pytest.raises(NotFoundError):
            toggle_bookmark("missing", "bob")

    def test_metrics(self, published_thread):
        toggle_bookmark(published_thread.thread_id, "bob")
        toggle_bookmark(published_thread.thread_id, "bob")
        assert bookmarks_total.value(labels={"action": "added"}) == 1
        assert bookmarks_total.value(labels={"action": "removed"}) == 1


class TestBookmarkedThreads:
    def test_lists_existing_bookmarks_newest_first(self, make_thread):
        older = make_thread(title="Older", status="published")
        newer = make_thread(title="Newer", status="published")
        toggle_bookmark(older.thread_id, "bob")
        toggle_bookmark(newer.thread_id, "bob")

        page = list_bookmarked_threads("bob", page=1, limit=10)
        assert page.total == 2
        assert {t.thread_id for t in page.items} == {older.thread_id, newer.thread_id}
        assert page.items == sorted(page.items, key=lambda t: t.created_at, reverse=True)

    def test_empty_for_new_user(self):
        page = list_bookmarked_threads("nobody")
        assert page.total == 0
        assert page.pages == 0

    def test_pagination(self, make_thread):
        for i in range(3):
            thread = make_thread(title=f"T{i}", status="published")
            toggle_bookmark(thread.thread_id, "bob")
        page = list_bookmarked_threads("bob", page=2, limit=2)
        assert page.total == 3
        assert page.pages == 2
        assert len(page.items) == 1


class TestCollections:
    def test_create_collection(self):
        collections = create_collection("bob", "  Mornings ")
        assert [c.name for c in collections] == ["Mornings"]
        assert collections[0].threads == []

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            create_collection("bob", "   ")

    def test_duplicate_name_conflict(self):
        create_collection("bob", "Mornings")
        with pytest.raises(ConflictError):
            create_collection("bob", "Mornings")

    def test_add_requires_existing_collection(self, published_thread):
        toggle_bookmark(published_thread.thread_id, "bob")
        with pytest.raises(NotFoundError):
            add_to_collection("bob", "Nope", published_thread.thread_id)

    def test_add_requires_existing_thread(self):
        create_collection("bob", "Mornings")
        with pytest.raises(NotFoundError):
            add_to_collection("bob", "Mornings", "missing")

    def test_add_requires_bookmark(self, published_thread):
        create_collection("bob", "Mornings")
        with pytest.raises(ConflictError):
            add_to_collection("bob", "Mornings", published_thread.thread_id)

    def test_add_twice_to_same_collection_conflict(self, published_thread):
        toggle_bookmark(published_thread.thread_id, "bob")
        create_collection("bob", "Mornings")
        collection = add_to_collection("bob", "Mornings", published_thread.thread_id)
        assert collection.threads == [published_thread.thread_id]
        with pytest.raises(ConflictError):
            add_to_collection("bob", "Mornings", published_thread.thread_id)

    def test_thread_in_at_most_one_collection(self, published_thread):
        toggle_bookmark(published_thread.thread_id, "bob")
        create_collection("bob", "Mornings")
        create_collection("bob", "Evenings")
        add_to_collection("bob", "Mornings", published_thread.thread_id)
        with pytest.raises(ConflictError):
            add_to_collection("bob", "Evenings", published_thread.thread_id)
        assert _user("bob").collection("Evenings").threads == []

    def test_move_by_remove_then_add(self, published_thread):
        toggle_bookmark(published_thread.thread_id, "bob")
        create_collection("bob", "Mornings")
        create_collection("bob", "Evenings")
        add_to_collection("bob", "Mornings", published_thread.thread_id)
        removed = remove_from_collection("bob", "Mornings", published_thread.thread_id)
        assert removed.threads == []
        moved = add_to_collection("bob", "Evenings", published_thread.thread_id)
        assert moved.threads == [published_thread.thread_id]

    def test_remove_non_member_not_found(self, published_thread):
        create_collection("bob", "Mornings")
        with pytest.raises(NotFoundError):
            remove_from_collection("bob", "Mornings", published_thread.thread_id)

    def test_remove_from_missing_collection(self, published_thread):
        with pytest.raises(NotFoundError):
            remove_from_collection("bob", "Nope", published_thread.thread_id)

    def test_lookups_trim_collection_name(self, published_thread):
        create_collection("bob", "reading")
        toggle_bookmark(published_thread.thread_id, "bob")

        added = add_to_collection("bob", " reading ", published_thread.thread_id)
        assert added.name == "reading"
        assert added.threads == [published_thread.thread_id]

        removed = remove_from_collection("bob", "reading  ", published_thread.thread_id)
        assert removed.threads == []

    def test_collections_show_title_and_author(self, published_thread, make_thread):
        update_profile("alice", UpdateProfileRequest(name="Alice A"))
        other = make_thread(author="carol", title="Carol's", status="published")
        create_collection("bob", "Mornings")
        create_collection("bob", "Evenings")
        for thread in (published_thread, other):
            toggle_bookmark(thread.thread_id, "bob")
        add_to_collection("bob", "Mornings", published_thread.thread_id)
        add_to_collection("bob", "Evenings", other.thread_id)

        mornings, evenings = get_collections("bob", "bob")
        assert mornings.name == "Mornings"
        assert [(t.thread_id, t.title, t.author) for t in mornings.threads] == [
            (published_thread.thread_id, "Published", "Alice A")
        ]
        assert evenings.threads[0].author_id == "carol"
        assert evenings.threads[0].author.startswith("@u_")

    def test_collections_skip_missing_threads(self, published_thread):
        create_collection("bob", "Mornings")
        toggle_bookmark(published_thread.thread_id, "bob")
        add_to_collection("bob", "Mornings", published_thread.thread_id)
        get_store().threads.delete_by_id(published_thread.thread_id)

        assert get_collections("bob", "bob")[0].threads == []

    def test_collections_private(self):
        create_collection("bob", "Mornings")
        assert [c.name for c in get_collections("bob", "bob")] == ["Mornings"]
        assert get_collections("bob", "carol") == []
        assert get_collections("bob", None) == []


class TestPurge:
    def test_purge_counts_modified_users(self, published_thread):
        toggle_bookmark(published_thread.thread_id, "bob")
        toggle_bookmark(published_thread.thread_id, "carol")
        create_collection("dave", "Empty")

        assert purge_thread_references(published_thread.thread_id) == 2
        assert _user("bob").bookmarks == []
        assert _user("carol").bookmarks == []


class TestUnpublish:
    """A published thread moved back to draft loses its bookmarks"""

    def test_return_to_draft_clears_bookmarks(self, published_thread):
        create_collection("bob", "Mornings")
        toggle_bookmark(published_thread.thread_id, "bob")
        toggle_bookmark(published_thread.thread_id, "carol")
        add_to_collection("bob", "Mornings", published_thread.thread_id)

        result = update_thread(
            published_thread.thread_id,
            "alice",
            UpdateThreadRequest(status="draft", segments=[SegmentInput(content="secret unpublished text")]),
        )

        assert result.thread.bookmark_count == 0
        assert get_store().threads.find_by_id(published_thread.thread_id).bookmark_count == 0
        assert _user("bob").bookmarks == []
        assert _user("bob").collections[0].threads == []
        assert _user("carol").bookmarks == []
        assert list_bookmarked_threads("bob").items == []

    def test_stale_bookmark_never_lists_draft(self, published_thread):
        toggle_bookmark(published_thread.thread_id, "bob")
        # Bypass the lifecycle so the bookmark outlives the status change
        threads = get_store().threads
        current = threads.find_by_id(published_thread.thread_id)
        threads.save(current.model_copy(update={"status": ThreadStatus.DRAFT}))

        page = list_bookmarked_threads("bob")
        assert page.items == []
        assert page.total == 0

    def test_author_cannot_rebookmark_own_draft(self, make_thread):
        own = make_thread(author="bob", status="published")
        toggle_bookmark(own.thread_id, "bob")
        update_thread(own.thread_id, "bob", UpdateThreadRequest(status="draft"))
        assert list_bookmarked_threads("bob").items == []
        with pytest.raises(PermissionError):
            toggle_bookmark(own.thread_id, "bob")
