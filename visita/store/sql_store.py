"""
SQL-backed document store.

Documents live as JSON in ``documents``; every write rewrites the
``document_fields`` index rows so that the two supported predicates
(scalar equality, single array membership) are evaluated in SQL.

Rules:
  - Every public write commits its own transaction. Writes issued by
    different callers never share a unit of work.
  - Values are indexed JSON-encoded, so ``1`` and ``"1"`` stay distinct.
  - Strings longer than the index column are stored but not indexed.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import aliased

from visita.core.exceptions import NotFoundError
from visita.models import db
from visita.models.document import Document, DocumentField
from visita.store.document_store import (
    ARRAY_CONTAINS,
    DocumentStore,
    Filter,
    UnsupportedQueryError,
    WriteBatch,
    check_filters,
)

logger = logging.getLogger(__name__)

_MAX_INDEXED_VALUE = 255
_SCALARS = (str, int, float, bool, type(None))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _encode(value) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False)


def _index_rows(data: dict, prefix: str = "") -> list[tuple[str, str, bool]]:
    """Flatten ``data`` into ``(path, encoded_value, is_array_item)`` triples."""
    rows: list[tuple[str, str, bool]] = []
    for key, value in data.items():
        if key == "id":
            continue
        path = f"{prefix}{key}"
        if isinstance(value, dict):
            rows.extend(_index_rows(value, prefix=f"{path}."))
        elif isinstance(value, list):
            seen = set()
            for item in value:
                if not isinstance(item, _SCALARS):
                    continue
                encoded = _encode(item)
                if encoded in seen or len(encoded) > _MAX_INDEXED_VALUE:
                    continue
                seen.add(encoded)
                rows.append((path, encoded, True))
        elif isinstance(value, _SCALARS):
            encoded = _encode(value)
            if len(encoded) <= _MAX_INDEXED_VALUE:
                rows.append((path, encoded, False))
    return rows


class SqlDocumentStore(DocumentStore):
    """DocumentStore on the application's Flask-SQLAlchemy session."""

    def __init__(self, session=None, *, max_batch_writes: int = 500) -> None:
        self._session = session
        self.max_batch_writes = max_batch_writes

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    # ── Internal helpers ─────────────────────────────────────────────────

    def _load(self, collection: str, doc_id: str, *, for_update: bool = False) -> Document | None:
        stmt = select(Document).where(
            Document.collection == collection,
            Document.doc_id == doc_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def _reindex(self, doc: Document) -> None:
        doc.fields = [
            DocumentField(path=path, value=value, is_array_item=is_item)
            for path, value, is_item in _index_rows(doc.data or {})
        ]

    def _put(self, collection: str, doc_id: str, data: dict, created_at: datetime | None) -> Document:
        doc = self._load(collection, doc_id)
        payload = {k: v for k, v in data.items() if k != "id"}
        if doc is None:
            doc = Document(
                collection=collection,
                doc_id=doc_id,
                data=payload,
                created_at=created_at or _utcnow(),
            )
            self.session.add(doc)
        else:
            doc.data = payload
        self._reindex(doc)
        return doc

    def _merge(self, collection: str, doc_id: str, changes: dict) -> Document:
        doc = self._load(collection, doc_id, for_update=True)
        if doc is None:
            raise NotFoundError(resource=collection, resource_id=doc_id)
        # Reassign so the JSON column change is detected
        doc.data = {**(doc.data or {}), **changes}
        self._reindex(doc)
        return doc

    def _remove(self, collection: str, doc_id: str) -> bool:
        doc = self._load(collection, doc_id)
        if doc is None:
            return False
        self.session.delete(doc)
        return True

    def _commit(self) -> None:
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    # ── DocumentStore API ────────────────────────────────────────────────

    def create(self, collection, data, *, doc_id=None, created_at=None):
        doc_id = doc_id or uuid.uuid4().hex
        self._put(collection, doc_id, data, created_at)
        self._commit()
        return doc_id

    def get(self, collection, doc_id):
        doc = self._load(collection, doc_id)
        return doc.to_dict() if doc else None

    def update(self, collection, doc_id, changes):
        doc = self._merge(collection, doc_id, changes)
        self._commit()
        return doc.to_dict()

    def delete(self, collection, doc_id):
        removed = self._remove(collection, doc_id)
        if removed:
            self._commit()
        return removed

    def array_union(self, collection, doc_id, field, values):
        doc = self._load(collection, doc_id, for_update=True)
        if doc is None:
            raise NotFoundError(resource=collection, resource_id=doc_id)
        current = list((doc.data or {}).get(field) or [])
        missing = [v for v in values if v not in current]
        if not missing:
            return doc.to_dict()
        doc.data = {**doc.data, field: current + missing}
        self._reindex(doc)
        self._commit()
        return doc.to_dict()

    def query(self, collection, filters, *, order_by="created_at", descending=True, limit=None):
        check_filters(filters)
        if order_by != "created_at":
            raise UnsupportedQueryError(f"Ordering is only supported on created_at (got {order_by!r})")

        stmt = select(Document).where(Document.collection == collection)
        for flt in filters:
            idx = aliased(DocumentField)
            stmt = stmt.join(idx, idx.document_pk == Document.pk).where(
                idx.path == flt.field,
                idx.value == _encode(flt.value),
                idx.is_array_item.is_(flt.op == ARRAY_CONTAINS),
            )

        if descending:
            stmt = stmt.order_by(Document.created_at.desc(), Document.pk.desc())
        else:
            stmt = stmt.order_by(Document.created_at.asc(), Document.pk.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        return [doc.to_dict() for doc in self.session.execute(stmt).scalars()]

    def batch(self):
        return _SqlWriteBatch(self, self.max_batch_writes)


class _SqlWriteBatch(WriteBatch):
    """Applies queued operations inside a single transaction."""

    def __init__(self, store: SqlDocumentStore, max_writes: int) -> None:
        super().__init__(max_writes)
        self._store = store

    def _apply(self, ops):
        store = self._store
        try:
            for op, collection, doc_id, payload in ops:
                if op == "set":
                    store._put(collection, doc_id, payload, None)
                elif op == "update":
                    store._merge(collection, doc_id, payload)
                elif op == "delete":
                    store._remove(collection, doc_id)
            store.session.commit()
        except Exception:
            store.session.rollback()
            logger.warning("Write batch of %d operation(s) rolled back", len(ops))
            raise
        return len(ops)
