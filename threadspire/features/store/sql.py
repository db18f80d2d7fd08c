"""
threadspire/features/store/sql.py

SQLAlchemy-backed document collections.

Each row keeps the full document as JSON in `doc` (authoritative) plus a few
projected columns used for indexed filtering and ordering. Saves are
compare-and-set on the `version` column; increments run as a locked
read-modify-write inside one transaction.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import Table, and_, delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError

from threadspire.core.database import get_db_session
from threadspire.core.errors import NotFoundError, StaleDocumentError
from threadspire.features.store.base import (
    Doc,
    DocumentCollection,
    Filter,
    Sort,
    matches,
    sort_documents,
    split_lookup,
    window,
)

_PUSHDOWN = ("eq", "ne", "in", "gte", "lte")


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


class SqlCollection(DocumentCollection[Doc]):
    """
    Document collection stored in one table.

    Args:
        table: SQLAlchemy table with `id`, `version` and `doc` columns
        projected: document fields mirrored into same-named columns
    """

    def __init__(self, name, model, id_field, table: Table, projected: Tuple[str, ...] = ()):
        super().__init__(name, model, id_field)
        self.table = table
        self.projected = tuple(projected)

    # ----- row mapping -----

    def _row_values(self, doc: Doc) -> Dict[str, Any]:
        values = {
            "doc": doc.model_dump(mode="json"),
        }
        for field in self.projected:
            values[field] = _column_value(getattr(doc, field))
        return values

    def _to_doc(self, row) -> Doc:
        data = dict(row.doc)
        data[self.id_field] = row.id
        data["version"] = row.version
        return self.model.model_validate(data)

    def _compile(self, filter: Optional[Filter]):
        """Split a filter into SQL clauses and a residual evaluated in Python."""
        clauses = []
        residual: Filter = {}
        for key, expected in (filter or {}).items():
            if key == "any_of":
                residual[key] = expected
                continue
            field, lookup = split_lookup(key)
            column_name = "id" if field == self.id_field else field
            if (column_name == "id" or field in self.projected) and lookup in _PUSHDOWN:
                column = self.table.c[column_name]
                if isinstance(expected, (list, tuple, set)):
                    expected = [_column_value(v) for v in expected]
                else:
                    expected = _column_value(expected)
                if lookup == "eq":
                    clauses.append(column.is_(None) if expected is None else column == expected)
                elif lookup == "ne":
                    clauses.append(column.is_not(None) if expected is None else column != expected)
                elif lookup == "in":
                    clauses.append(column.in_(expected))
                elif lookup == "gte":
                    clauses.append(column >= expected)
                elif lookup == "lte":
                    clauses.append(column <= expected)
            else:
                residual[key] = expected
        return clauses, residual

    # ----- reads -----

    def find_by_id(self, doc_id: str) -> Optional[Doc]:
        with get_db_session() as session:
            row = session.execute(select(self.table).where(self.table.c.id == doc_id)).first()
            return self._to_doc(row) if row else None

    def find_many(
        self,
        filter: Optional[Filter] = None,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Doc]:
        clauses, residual = self._compile(filter)
        sort = list(sort or [])
        sortable = all(field in self.projected for field, _ in sort)
        stmt = select(self.table)
        if clauses:
            stmt = stmt.where(and_(*clauses))

        if not residual and sortable:
            for field, descending in sort:
                column = self.table.c[field]
                stmt = stmt.order_by(column.desc() if descending else column.asc())
            stmt = stmt.order_by(self.table.c.id.asc())
            if skip:
                stmt = stmt.offset(skip)
            if limit is not None:
                stmt = stmt.limit(limit)
            with get_db_session() as session:
                return [self._to_doc(row) for row in session.execute(stmt).all()]

        with get_db_session() as session:
            docs = [self._to_doc(row) for row in session.execute(stmt).all()]
        docs = [d for d in docs if matches(d, residual)]
        return window(sort_documents(docs, sort), skip, limit)

    def count_matching(self, filter: Optional[Filter] = None) -> int:
        clauses, residual = self._compile(filter)
        if residual:
            return len(self.find_many(filter))
        stmt = select(func.count()).select_from(self.table)
        if clauses:
            stmt = stmt.where(and_(*clauses))
        with get_db_session() as session:
            return int(session.execute(stmt).scalar_one())

    # ----- writes -----

    def insert(self, doc: Doc) -> Doc:
        stored = doc.model_copy(update={"version": 1})
        values = self._row_values(stored)
        values.update({
            "id": self.doc_id(stored),
            "version": 1,
            "created_at": stored.created_at,
            "updated_at": stored.updated_at,
        })
        try:
            with get_db_session() as session:
                session.execute(insert(self.table).values(**values))
        except IntegrityError:
            raise ValueError(f"{self.name}/{self.doc_id(doc)} already exists")
        return stored

    def save(self, doc: Doc) -> Doc:
        doc_id = self.doc_id(doc)
        stored = doc.model_copy(update={"version": doc.version + 1})
        values = self._row_values(stored)
        values.update({"version": stored.version, "updated_at": stored.updated_at})
        with get_db_session() as session:
            result = session.execute(
                update(self.table)
                .where(and_(self.table.c.id == doc_id, self.table.c.version == doc.version))
                .values(**values)
            )
            if result.rowcount == 0:
                exists = session.execute(
                    select(self.table.c.id).where(self.table.c.id == doc_id)
                ).first()
                if exists is None:
                    raise NotFoundError(f"{self.name}/{doc_id} not found")
                raise StaleDocumentError(self.name, doc_id, doc.version)
        return stored

    def increment(self, doc_id: str, field: str, delta: int, minimum: Optional[int] = None) -> Optional[Doc]:
        with get_db_session() as session:
            row = session.execute(
                select(self.table).where(self.table.c.id == doc_id).with_for_update()
            ).first()
            if row is None:
                return None
            current = self._to_doc(row)
            value = getattr(current, field) + delta
            if minimum is not None:
                value = max(minimum, value)
            stored = current.model_copy(update={field: value, "version": current.version + 1})
            values = self._row_values(stored)
            values["version"] = stored.version
            session.execute(update(self.table).where(self.table.c.id == doc_id).values(**values))
        return stored

    def delete_by_id(self, doc_id: str) -> bool:
        with get_db_session() as session:
            result = session.execute(delete(self.table).where(self.table.c.id == doc_id))
            return result.rowcount > 0

    def clear(self) -> None:
        with get_db_session() as session:
            session.execute(delete(self.table))
