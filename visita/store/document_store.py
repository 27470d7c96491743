"""
Document store contract.

The workflow core talks to persistence only through this interface. The
query model is deliberately narrow:

  - create / get / update / delete a document by id inside a collection
  - filter on equality over scalar fields
  - filter on array membership over exactly ONE array field per query,
    with ordering by creation time and a limit
  - no combination of two array-membership predicates in one query

Callers that need a compound predicate (e.g. "role X AND diocese Y AND
parish Z") must query on one array field and finish the filtering
in-process.

Usage:
    from visita.store import Filter, ARRAY_CONTAINS

    docs = store.query(
        "notifications",
        [Filter("recipients.roles", ARRAY_CONTAINS, "parish")],
        limit=40,
    )
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from datetime import datetime
from typing import Any

EQUALS = "=="
ARRAY_CONTAINS = "array_contains"
_OPERATORS = frozenset({EQUALS, ARRAY_CONTAINS})


class StoreError(Exception):
    """Base class for document store failures."""


class UnsupportedQueryError(StoreError):
    """Raised when a query asks for more than the store can evaluate."""


class BatchLimitExceeded(StoreError):
    """Raised when a write batch holds more operations than the store allows."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Write batch has {size} operations; limit is {limit}")
        self.size = size
        self.limit = limit


class StorePermissionDenied(StoreError):
    """Raised when the caller may not read or write the requested documents."""


@dataclass(frozen=True)
class Filter:
    """Single query predicate. ``field`` may be a dotted path (``recipients.roles``)."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise UnsupportedQueryError(f"Unsupported operator {self.op!r}")


def check_filters(filters: list[Filter]) -> None:
    """Reject filter combinations the store cannot evaluate server-side."""
    array_filters = [f for f in filters if f.op == ARRAY_CONTAINS]
    if len(array_filters) > 1:
        fields = ", ".join(f.field for f in array_filters)
        raise UnsupportedQueryError(
            f"Only one array_contains filter per query is supported (got: {fields})"
        )


class WriteBatch(abc.ABC):
    """Atomic group of writes. Either every operation commits or none does."""

    def __init__(self, max_writes: int) -> None:
        self.max_writes = max_writes
        self._ops: list[tuple] = []

    def __len__(self) -> int:
        return len(self._ops)

    def set(self, collection: str, doc_id: str, data: dict) -> "WriteBatch":
        self._ops.append(("set", collection, doc_id, data))
        return self

    def update(self, collection: str, doc_id: str, changes: dict) -> "WriteBatch":
        self._ops.append(("update", collection, doc_id, changes))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._ops.append(("delete", collection, doc_id, None))
        return self

    def commit(self) -> int:
        """Apply all queued operations atomically; returns the operation count."""
        if len(self._ops) > self.max_writes:
            raise BatchLimitExceeded(len(self._ops), self.max_writes)
        count = self._apply(list(self._ops))
        self._ops.clear()
        return count

    @abc.abstractmethod
    def _apply(self, ops: list[tuple]) -> int:
        """Backend-specific atomic application of ``ops``."""


class DocumentStore(abc.ABC):
    """Abstract document store. See module docstring for the query model."""

    max_batch_writes: int = 500

    @abc.abstractmethod
    def create(
        self,
        collection: str,
        data: dict,
        *,
        doc_id: str | None = None,
        created_at: datetime | None = None,
    ) -> str:
        """Insert a document and return its id."""

    @abc.abstractmethod
    def get(self, collection: str, doc_id: str) -> dict | None:
        """Return the document (with ``id``) or None."""

    @abc.abstractmethod
    def update(self, collection: str, doc_id: str, changes: dict) -> dict:
        """Merge top-level ``changes`` into the document; returns the new document."""

    @abc.abstractmethod
    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document; returns False if it did not exist."""

    @abc.abstractmethod
    def array_union(self, collection: str, doc_id: str, field: str, values: list) -> dict:
        """Append each of ``values`` to array ``field`` unless already present."""

    @abc.abstractmethod
    def query(
        self,
        collection: str,
        filters: list[Filter],
        *,
        order_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict]:
        """Run a constrained query. Raises UnsupportedQueryError on compound array filters."""

    @abc.abstractmethod
    def batch(self) -> WriteBatch:
        """Start a new write batch bounded by ``max_batch_writes``."""
