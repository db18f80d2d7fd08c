"""
threadspire/features/events/bus.py

In-process domain event dispatcher.

Events are frozen pydantic models; handlers run synchronously in the
publisher's request, in subscription order. The thread lifecycle uses this to
hand deletion and unpublish cleanup to the bookmark domain without importing it.
"""

from datetime import datetime
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from threadspire.core.logging import log_event


class ThreadDeleted(BaseModel):
    """A thread is about to be removed; references to it must be purged."""

    model_config = ConfigDict(frozen=True)

    event_type: str = "ThreadDeleted"
    thread_id: str
    author_id: str
    status: str
    deleted_at: datetime


class ThreadUnpublished(BaseModel):
    """A published thread went back to draft; bookmarks of it are dropped."""

    model_config = ConfigDict(frozen=True)

    event_type: str = "ThreadUnpublished"
    thread_id: str
    author_id: str
    unpublished_at: datetime


Handler = Callable[[BaseModel], None]

_handlers: Dict[str, List[Handler]] = {}
_defaults_registered = False


def subscribe(event_type: str, handler: Handler) -> None:
    handlers = _handlers.setdefault(event_type, [])
    if handler not in handlers:
        handlers.append(handler)


def _register_default_handlers() -> None:
    global _defaults_registered
    if _defaults_registered:
        return
    from threadspire.features.bookmarks.service import handle_thread_deleted, handle_thread_unpublished

    subscribe("ThreadDeleted", handle_thread_deleted)
    subscribe("ThreadUnpublished", handle_thread_unpublished)
    _defaults_registered = True


def publish(event: BaseModel, request_id: Optional[str] = None) -> int:
    """
    Dispatch `event` to its handlers. Returns the number of handlers run.

    Handler exceptions propagate to the publisher.
    """
    _register_default_handlers()
    event_type = getattr(event, "event_type", type(event).__name__)
    handlers = list(_handlers.get(event_type, []))
    for handler in handlers:
        handler(event)

    log_event(
        "info",
        "event.published",
        request_id=request_id,
        thread_id=getattr(event, "thread_id", None),
        event_type=event_type,
        extra={"handlers": len(handlers)},
    )
    return len(handlers)


def reset_handlers() -> None:
    """FOR TESTING ONLY - drop all subscriptions, defaults included."""
    global _defaults_registered
    _handlers.clear()
    _defaults_registered = False
