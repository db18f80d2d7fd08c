"""Optimistic-concurrency retry loop for read-modify-write operations."""

from typing import Callable, Optional, TypeVar

from threadspire.core.config import settings
from threadspire.core.errors import ConflictError, StaleDocumentError
from threadspire.core.logging import log_event
from threadspire.core.metrics import store_conflicts_total

T = TypeVar("T")


def retry_on_conflict(
    operation: Callable[[], T],
    *,
    attempts: Optional[int] = None,
    collection: str = "",
) -> T:
    """
    Run `operation` until its save wins the version check.

    `operation` must re-read the documents it mutates on every call; it is
    simply invoked again after a StaleDocumentError. Validation errors raised
    by the operation propagate immediately.

    Raises:
        ConflictError: still losing the race after `attempts` tries
    """
    max_attempts = attempts or settings.SAVE_RETRY_ATTEMPTS
    last_error: Optional[StaleDocumentError] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except StaleDocumentError as exc:
            last_error = exc
            store_conflicts_total.inc(labels={"collection": exc.collection or collection})
            log_event(
                "info",
                "store.save_conflict",
                event_type="store.save_conflict",
                extra={"collection": exc.collection, "doc_id": exc.doc_id, "attempt": attempt},
            )

    log_event(
        "warning",
        "store.retries_exhausted",
        event_type="store.retries_exhausted",
        error_code="concurrent_modification",
        extra={"collection": collection or (last_error.collection if last_error else ""), "attempts": max_attempts},
    )
    raise ConflictError(
        "The resource was modified concurrently, please retry",
        code="concurrent_modification",
    )
