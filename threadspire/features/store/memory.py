"""
threadspire/features/store/memory.py

In-memory document collections (default when DATABASE_URL is unset).
Documents are frozen pydantic models, so handing out stored instances is safe.
"""

import threading
from typing import Dict, List, Optional

from threadspire.core.errors import NotFoundError, StaleDocumentError
from threadspire.features.store.base import (
    Doc,
    DocumentCollection,
    Filter,
    Sort,
    matches,
    sort_documents,
    window,
)


class InMemoryCollection(DocumentCollection[Doc]):
    """Dict-backed collection; a lock makes CAS saves and increments atomic."""

    def __init__(self, name, model, id_field):
        super().__init__(name, model, id_field)
        self._docs: Dict[str, Doc] = {}
        self._lock = threading.RLock()

    def find_by_id(self, doc_id: str) -> Optional[Doc]:
        with self._lock:
            return self._docs.get(doc_id)

    def find_many(
        self,
        filter: Optional[Filter] = None,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Doc]:
        with self._lock:
            docs = [d for d in self._docs.values() if matches(d, filter)]
        return window(sort_documents(docs, sort), skip, limit)

    def count_matching(self, filter: Optional[Filter] = None) -> int:
        with self._lock:
            return sum(1 for d in self._docs.values() if matches(d, filter))

    def insert(self, doc: Doc) -> Doc:
        doc_id = self.doc_id(doc)
        with self._lock:
            if doc_id in self._docs:
                raise ValueError(f"{self.name}/{doc_id} already exists")
            stored = doc.model_copy(update={"version": 1})
            self._docs[doc_id] = stored
            return stored

    def save(self, doc: Doc) -> Doc:
        doc_id = self.doc_id(doc)
        with self._lock:
            current = self._docs.get(doc_id)
            if current is None:
                raise NotFoundError(f"{self.name}/{doc_id} not found")
            if current.version != doc.version:
                raise StaleDocumentError(self.name, doc_id, doc.version)
            stored = doc.model_copy(update={"version": doc.version + 1})
            self._docs[doc_id] = stored
            return stored

    def increment(self, doc_id: str, field: str, delta: int, minimum: Optional[int] = None) -> Optional[Doc]:
        with self._lock:
            current = self._docs.get(doc_id)
            if current is None:
                return None
            value = getattr(current, field) + delta
            if minimum is not None:
                value = max(minimum, value)
            stored = current.model_copy(update={
                field: value,
                "version": current.version + 1,
            })
            self._docs[doc_id] = stored
            return stored

    def delete_by_id(self, doc_id: str) -> bool:
        with self._lock:
            return self._docs.pop(doc_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._docs.clear()

    def __len__(self) -> int:
        return len(self._docs)
