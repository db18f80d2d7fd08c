"""
threadspire/tests/test_thread_lifecycle.py
Create, fork, publish-by-copy, in-place edits and related versions.
"""

import pytest

from threadspire.core.errors import NotFoundError, PermissionError, ValidationError
from threadspire.core.metrics import thread_mutations_total
from threadspire.features.store import get_store
from threadspire.features.threads.service import (
    create_thread,
    get_related_versions,
    get_thread,
    update_thread,
)
from threadspire.models.thread import (
    CreateThreadRequest,
    SegmentInput,
    ThreadStatus,
    UpdateThreadRequest,
)


class TestCreateThread:
    """Creation rules and defaults"""

    def test_defaults_to_draft(self, make_thread):
        thread = make_thread()
        assert thread.status == ThreadStatus.DRAFT
        assert thread.bookmark_count == 0
        assert thread.fork_count == 0
        assert thread.version == 1

    def test_title_is_trimmed(self, make_thread):
        thread = make_thread(title="  Spaced out  ")
        assert thread.title == "Spaced out"

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError):
            create_thread("alice", CreateThreadRequest(title="   "))

    def test_invalid_status_rejected(self):
        with pytest.raises(ValidationError):
            create_thread("alice", CreateThreadRequest(title="T", status="archived"))

    def test_empty_segment_content_rejected(self):
        request = CreateThreadRequest(title="T", segments=[SegmentInput(content="  ")])
        with pytest.raises(ValidationError):
            create_thread("alice", request)
        assert get_store().threads.count_matching() == 0

    def test_anonymous_caller_forbidden(self):
        with pytest.raises(PermissionError):
            create_thread(None, CreateThreadRequest(title="T"))

    def test_tags_deduplicated_in_order(self, make_thread):
        thread = make_thread(tags=("focus", " calm ", "focus", ""))
        assert thread.tags == ["focus", "calm"]

    def test_segments_start_without_reactions(self, make_thread):
        thread = make_thread(segments=("a", "b"))
        assert [s.content for s in thread.segments] == ["a", "b"]
        for segment in thread.segments:
            assert segment.total_reactions == 0
            assert all(bucket.count == 0 for bucket in segment.reactions.values())

    def test_author_is_upserted(self, make_thread):
        make_thread(author="newcomer")
        assert get_store().users.find_by_id("newcomer") is not None


class TestForking:
    """Forking a published thread vs a draft"""

    def test_forking_draft_is_forbidden(self, make_thread):
        draft = make_thread()
        with pytest.raises(PermissionError):
            make_thread(author="bob", fork_of=draft.thread_id)

    def test_forking_missing_thread_not_found(self, make_thread):
        with pytest.raises(NotFoundError):
            make_thread(author="bob", fork_of="missing")

    def test_forking_published_thread(self, make_thread, published_thread):
        fork = make_thread(author="bob", title="My take", fork_of=published_thread.thread_id)
        assert fork.original_thread_id == published_thread.thread_id
        assert fork.original_author_id == "alice"
        source = get_store().threads.find_by_id(published_thread.thread_id)
        assert source.fork_count == 1

    def test_fork_does_not_copy_reactions(self, make_thread, published_thread):
        from threadspire.features.reactions.service import react

        segment_id = published_thread.segments[0].segment_id
        react(published_thread.thread_id, segment_id, "🔥", "carol")
        fork = make_thread(author="bob", fork_of=published_thread.thread_id)
        assert fork.total_reactions == 0

    def test_fork_metric_recorded(self, make_thread, published_thread):
        make_thread(author="bob", fork_of=published_thread.thread_id)
        assert thread_mutations_total.value(labels={"type": "fork"}) == 1


class TestPublishDraft:
    """Draft -> published creates a new document"""

    def test_publish_creates_new_thread(self, make_thread):
        draft = make_thread(title="A")
        result = update_thread(draft.thread_id, "alice", UpdateThreadRequest(title="B", status="published"))

        assert result.published_from_draft
        published = result.thread
        assert published.thread_id != draft.thread_id
        assert published.title == "B"
        assert published.status == ThreadStatus.PUBLISHED
        assert published.original_thread_id is None
        assert published.supersedes == draft.thread_id

        assert result.draft_thread.thread_id == draft.thread_id
        assert result.draft_thread.status == ThreadStatus.PUBLISHED
        # The draft keeps the content it had when it was published
        assert result.draft_thread.title == "A"

    def test_related_versions_surface_the_draft(self, make_thread):
        draft = make_thread(title="A")
        result = update_thread(draft.thread_id, "alice", UpdateThreadRequest(title="B", status="published"))
        related = get_related_versions(result.thread)
        assert related.draft_version.thread_id == draft.thread_id
        assert related.draft_version.title == "A"

    def test_publish_keeps_fork_attribution(self, make_thread, published_thread):
        fork_draft = make_thread(author="bob", fork_of=published_thread.thread_id)
        result = update_thread(fork_draft.thread_id, "bob", UpdateThreadRequest(status="published"))
        assert result.thread.original_thread_id == published_thread.thread_id
        assert result.thread.original_author_id == "alice"

    def test_publish_without_changes_copies_content(self, make_thread):
        draft = make_thread(title="Keep", segments=("one", "two"), tags=("x",))
        result = update_thread(draft.thread_id, "alice", UpdateThreadRequest(status="published"))
        assert result.thread.title == "Keep"
        assert [s.content for s in result.thread.segments] == ["one", "two"]
        assert result.thread.tags == ["x"]

    def test_only_author_may_publish(self, make_thread):
        draft = make_thread()
        with pytest.raises(PermissionError):
            update_thread(draft.thread_id, "mallory", UpdateThreadRequest(status="published"))

    def test_published_draft_leaves_draft_listing(self, make_thread):
        from threadspire.features.threads.service import list_threads

        draft = make_thread()
        update_thread(draft.thread_id, "alice", UpdateThreadRequest(status="published"))
        page = list_threads("alice", status="draft")
        assert page.total == 0


class TestInPlaceUpdate:
    """Edits that do not cross draft -> published"""

    def test_blank_title_keeps_existing(self, make_thread):
        draft = make_thread(title="Original")
        result = update_thread(draft.thread_id, "alice", UpdateThreadRequest(title="  ", tags=["new"]))
        assert result.draft_thread is None
        assert result.thread.thread_id == draft.thread_id
        assert result.thread.title == "Original"
        assert result.thread.tags == ["new"]
        assert result.thread.version == 2

    def test_known_segment_keeps_reactions(self, make_thread, published_thread):
        from threadspire.features.reactions.service import react

        first = published_thread.segments[0]
        react(published_thread.thread_id, first.segment_id, "💡", "bob")
        request = UpdateThreadRequest(segments=[
            SegmentInput(segment_id=first.segment_id, content="Edited"),
            SegmentInput(content="Brand new"),
        ])
        result = update_thread(published_thread.thread_id, "alice", request)
        kept, added = result.thread.segments
        assert kept.segment_id == first.segment_id
        assert kept.content == "Edited"
        assert kept.reactions["💡"].users == ["bob"]
        assert added.total_reactions == 0

    def test_published_can_return_to_draft(self, published_thread):
        result = update_thread(published_thread.thread_id, "alice", UpdateThreadRequest(status="draft"))
        assert result.thread.status == ThreadStatus.DRAFT
        assert result.thread.thread_id == published_thread.thread_id

    def test_return_to_draft_drops_bookmarks(self, published_thread):
        from threadspire.features.bookmarks.service import list_bookmarked_threads, toggle_bookmark

        toggle_bookmark(published_thread.thread_id, "bob")
        result = update_thread(published_thread.thread_id, "alice", UpdateThreadRequest(status="draft"))

        assert result.thread.bookmark_count == 0
        assert get_store().users.find_by_id("bob").bookmarks == []
        assert list_bookmarked_threads("bob").total == 0
        with pytest.raises(PermissionError):
            get_thread(published_thread.thread_id, "bob")

    def test_invalid_status_rejected_before_mutation(self, make_thread):
        draft = make_thread(title="Same")
        with pytest.raises(ValidationError):
            update_thread(draft.thread_id, "alice", UpdateThreadRequest(title="Other", status="gone"))
        assert get_store().threads.find_by_id(draft.thread_id).title == "Same"

    def test_missing_thread(self):
        with pytest.raises(NotFoundError):
            update_thread("missing", "alice", UpdateThreadRequest(title="x"))


class TestGetThread:
    """Visibility and related versions on read"""

    def test_draft_hidden_from_others(self, make_thread):
        draft = make_thread()
        with pytest.raises(PermissionError):
            get_thread(draft.thread_id, "bob")
        with pytest.raises(PermissionError):
            get_thread(draft.thread_id, None)

    def test_author_sees_draft(self, make_thread):
        draft = make_thread()
        view = get_thread(draft.thread_id, "alice")
        assert view.thread.thread_id == draft.thread_id
        assert view.is_bookmarked is False

    def test_is_bookmarked_for_caller(self, published_thread):
        from threadspire.features.bookmarks.service import toggle_bookmark

        toggle_bookmark(published_thread.thread_id, "bob")
        assert get_thread(published_thread.thread_id, "bob").is_bookmarked is True
        assert get_thread(published_thread.thread_id, "carol").is_bookmarked is False
        assert get_thread(published_thread.thread_id, None).is_bookmarked is False

    def test_draft_view_links_published_version(self, make_thread):
        draft = make_thread()
        result = update_thread(draft.thread_id, "alice", UpdateThreadRequest(status="draft", title="Still draft"))
        assert get_thread(draft.thread_id, "alice").related_versions is None

        published = update_thread(draft.thread_id, "alice", UpdateThreadRequest(status="published")).thread
        # The flipped draft is published now; relink by pulling it back to draft
        update_thread(draft.thread_id, "alice", UpdateThreadRequest(status="draft"))
        view = get_thread(draft.thread_id, "alice")
        assert result.thread.title == "Still draft"
        assert view.related_versions.published_version.thread_id == published.thread_id

    def test_missing_thread(self):
        with pytest.raises(NotFoundError):
            get_thread("missing", "alice")
