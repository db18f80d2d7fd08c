"""
threadspire/features/store/base.py

Document collection contract shared by the in-memory and SQL stores.

Filters are plain dicts. A bare key means equality; Django-style suffixes
select other comparisons:

    {"status": "published"}                 equality
    {"tags__in": ["a", "b"]}                field value in list / list field overlaps
    {"tags__all": ["a", "b"]}               list field contains every value
    {"bookmarks__contains": thread_id}      list field contains value
    {"original_thread_id__ne": None}        inequality
    {"created_at__gte": since}              range
    {"any_of": [{...}, {...}]}              OR of sub-filters

Sort is a list of (field, descending) pairs applied left to right.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel

Doc = TypeVar("Doc", bound=BaseModel)
Filter = Dict[str, Any]
Sort = Sequence[Tuple[str, bool]]

LOOKUPS = ("in", "all", "contains", "ne", "gte", "lte")


def split_lookup(key: str) -> Tuple[str, str]:
    """'tags__all' -> ('tags', 'all'); 'status' -> ('status', 'eq')"""
    field, sep, lookup = key.rpartition("__")
    if sep and lookup in LOOKUPS:
        return field, lookup
    return key, "eq"


def normalize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set)):
        return [normalize(v) for v in value]
    return value


def field_value(doc: BaseModel, field: str) -> Any:
    return normalize(getattr(doc, field, None))


def _compare(actual: Any, lookup: str, expected: Any) -> bool:
    expected = normalize(expected)
    if lookup == "eq":
        return actual == expected
    if lookup == "ne":
        return actual != expected
    if lookup == "in":
        if isinstance(actual, list):
            return any(item in expected for item in actual)
        return actual in expected
    if lookup == "all":
        return isinstance(actual, list) and all(item in actual for item in expected)
    if lookup == "contains":
        return isinstance(actual, list) and expected in actual
    if actual is None:
        return False
    if lookup == "gte":
        return actual >= expected
    if lookup == "lte":
        return actual <= expected
    raise ValueError(f"Unsupported lookup: {lookup}")


def matches(doc: BaseModel, filter: Optional[Filter]) -> bool:
    """Evaluate a filter against a document."""
    if not filter:
        return True
    for key, expected in filter.items():
        if key == "any_of":
            if not any(matches(doc, sub) for sub in expected):
                return False
            continue
        field, lookup = split_lookup(key)
        if not _compare(field_value(doc, field), lookup, expected):
            return False
    return True


def sort_documents(docs: List[Doc], sort: Optional[Sort]) -> List[Doc]:
    """Stable multi-key sort; documents missing a sort field go last."""
    ordered = list(docs)
    for field, descending in reversed(list(sort or [])):
        present = [d for d in ordered if field_value(d, field) is not None]
        missing = [d for d in ordered if field_value(d, field) is None]
        present.sort(key=lambda d: field_value(d, field), reverse=descending)
        ordered = present + missing
    return ordered


def window(docs: List[Doc], skip: int = 0, limit: Optional[int] = None) -> List[Doc]:
    if skip:
        docs = docs[skip:]
    if limit is not None:
        docs = docs[:limit]
    return docs


class DocumentCollection(ABC, Generic[Doc]):
    """
    One named collection of pydantic documents keyed by `id_field`.

    Every stored document carries a `version`. `save` is a compare-and-set on
    it and `increment` bumps it, so a full-document save never silently
    overwrites a concurrent counter change.
    """

    def __init__(self, name: str, model: Type[Doc], id_field: str):
        self.name = name
        self.model = model
        self.id_field = id_field

    def doc_id(self, doc: Doc) -> str:
        return getattr(doc, self.id_field)

    @abstractmethod
    def find_by_id(self, doc_id: str) -> Optional[Doc]:
        ...

    @abstractmethod
    def find_many(
        self,
        filter: Optional[Filter] = None,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Doc]:
        ...

    def find_one(self, filter: Optional[Filter] = None, sort: Optional[Sort] = None) -> Optional[Doc]:
        found = self.find_many(filter, sort=sort, limit=1)
        return found[0] if found else None

    @abstractmethod
    def count_matching(self, filter: Optional[Filter] = None) -> int:
        ...

    @abstractmethod
    def insert(self, doc: Doc) -> Doc:
        """Store a new document at version 1."""

    @abstractmethod
    def save(self, doc: Doc) -> Doc:
        """
        Replace the stored document if its version still equals `doc.version`.

        Returns the stored document (version + 1).

        Raises:
            StaleDocumentError: stored version moved on
            NotFoundError: document no longer exists
        """

    @abstractmethod
    def increment(self, doc_id: str, field: str, delta: int, minimum: Optional[int] = None) -> Optional[Doc]:
        """Atomically add `delta` to an integer field (floored at `minimum`). None if missing."""

    @abstractmethod
    def delete_by_id(self, doc_id: str) -> bool:
        ...

    @abstractmethod
    def clear(self) -> None:
        """Remove every document. FOR TESTING ONLY."""

    def update_where(self, filter: Filter, mutate: Callable[[Doc], Doc]) -> int:
        """
        Apply `mutate` to every matching document, one compare-and-set each.

        A document that changes underneath is re-read and re-checked against
        `filter` by retry_on_conflict. Best-effort bulk pass, not a transaction.
        """
        from threadspire.features.store.retry import retry_on_conflict

        modified = 0
        for doc in self.find_many(filter):
            doc_id = self.doc_id(doc)

            def _apply(doc_id: str = doc_id) -> bool:
                current = self.find_by_id(doc_id)
                if current is None or not matches(current, filter):
                    return False
                self.save(mutate(current))
                return True

            if retry_on_conflict(_apply, collection=self.name):
                modified += 1
        return modified
