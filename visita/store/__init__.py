"""Document store package: the contract plus the SQL-backed implementation."""

from visita.store.document_store import (  # noqa: F401
    ARRAY_CONTAINS,
    EQUALS,
    BatchLimitExceeded,
    DocumentStore,
    Filter,
    StoreError,
    StorePermissionDenied,
    UnsupportedQueryError,
    WriteBatch,
)
from visita.store.sql_store import SqlDocumentStore  # noqa: F401
