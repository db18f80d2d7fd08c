"""
threadspire/features/store

Entity store for Thread and User documents.

- SQL store (SQLAlchemy) when DATABASE_URL is configured and reachable
- In-memory store otherwise (default for development and tests)

Services only talk to `get_store()`; they never know which one they got.
"""

import logging

from threadspire.features.store.base import DocumentCollection
from threadspire.features.store.memory import InMemoryCollection
from threadspire.models.thread import Thread
from threadspire.models.user import User

logger = logging.getLogger("threadspire")

THREAD_COLUMNS = (
    "author_id",
    "status",
    "original_thread_id",
    "original_author_id",
    "supersedes",
    "bookmark_count",
    "fork_count",
    "created_at",
)
USER_COLUMNS = ("email",)


class EntityStore:
    """The two document collections the engine works with."""

    backend = "memory"

    def __init__(self, threads: DocumentCollection[Thread], users: DocumentCollection[User]):
        self.threads = threads
        self.users = users

    def clear(self) -> None:
        """FOR TESTING ONLY."""
        self.threads.clear()
        self.users.clear()


class InMemoryEntityStore(EntityStore):
    backend = "memory"

    def __init__(self):
        super().__init__(
            InMemoryCollection("threads", Thread, "thread_id"),
            InMemoryCollection("users", User, "user_id"),
        )


class SqlEntityStore(EntityStore):
    backend = "sql"

    def __init__(self):
        from threadspire.core import database
        from threadspire.features.store.sql import SqlCollection

        database.create_all_tables()
        super().__init__(
            SqlCollection("threads", Thread, "thread_id", database.threads, THREAD_COLUMNS),
            SqlCollection("users", User, "user_id", database.app_users, USER_COLUMNS),
        )


def get_entity_store() -> EntityStore:
    """
    Pick the store implementation.

    TEST_DATABASE_URL and DATABASE_URL are read from the environment before
    cached settings, so tests can switch backends before `reset_store()`.
    """
    from threadspire.core.database import check_connection, get_database_url

    database_url = get_database_url()
    if database_url:
        if check_connection():
            return SqlEntityStore()
        logger.warning(
            "store.sql_unavailable",
            extra={"event_type": "store.fallback", "database": database_url.split("@")[-1]},
        )

    return InMemoryEntityStore()


_store_instance = None


def get_store() -> EntityStore:
    """Singleton entity store; the only accessor services should use."""
    global _store_instance
    if _store_instance is None:
        _store_instance = get_entity_store()
        logger.info("store.selected", extra={"event_type": "store.selected", "backend": _store_instance.backend})
    return _store_instance


def reset_store() -> None:
    """
    Drop the store instance.

    FOR TESTING ONLY - forces re-selection on the next get_store() call.
    """
    global _store_instance
    _store_instance = None
