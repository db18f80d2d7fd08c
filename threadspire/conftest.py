# threadspire/conftest.py
import pytest

from threadspire.core.config import settings
from threadspire.core.metrics import METRICS
from threadspire.features.events.bus import reset_handlers
from threadspire.features.store import get_store, reset_store
from threadspire.models.thread import CreateThreadRequest, SegmentInput


@pytest.fixture(autouse=True)
def memory_store(monkeypatch):
    """
    Fresh in-memory entity store, metrics and event subscriptions per test.

    DATABASE_URL is cleared so store selection always lands on memory;
    tests that want SQL use the `sql_store` fixture.
    """
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    monkeypatch.setattr(settings, "DATABASE_URL", None)
    monkeypatch.setattr(settings, "TEST_DATABASE_URL", None)

    reset_store()
    reset_handlers()
    METRICS.reset()
    store = get_store()
    store.clear()
    yield store
    store.clear()
    reset_store()
    reset_handlers()


@pytest.fixture
def sql_store(monkeypatch):
    """SqlEntityStore on in-memory SQLite, installed as the active store."""
    from threadspire.core import database
    from threadspire.features import store as store_module
    from threadspire.features.store import SqlEntityStore

    database.dispose_engine()
    database.init_engine("sqlite://")
    store = SqlEntityStore()
    monkeypatch.setattr(store_module, "_store_instance", store)
    yield store
    database.drop_all_tables()
    database.dispose_engine()


@pytest.fixture
def make_thread():
    """Create a thread through the lifecycle service with sensible defaults."""
    from threadspire.features.threads.service import create_thread

    def _make(author="alice", title="A thread", segments=("First segment",), status=None, tags=(), fork_of=None):
        request = CreateThreadRequest(
            title=title,
            segments=[SegmentInput(content=c) for c in segments],
            tags=list(tags),
            status=status,
            original_thread_id=fork_of,
        )
        return create_thread(author, request)

    return _make


@pytest.fixture
def published_thread(make_thread):
    return make_thread(
        title="Published",
        segments=("Segment one", "Segment two", "Segment three"),
        status="published",
    )
