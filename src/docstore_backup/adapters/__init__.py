"""Document store adapters package.

Provides the ``DocumentStore`` Protocol and concrete async implementations:
an in-memory store and a PostgreSQL JSONB store.

Usage:
    from docstore_backup.adapters import DocumentStore, InMemoryDocumentStore
    from docstore_backup.adapters import AsyncPostgresDocumentStore
"""

from docstore_backup.adapters.base import DocumentStore
from docstore_backup.adapters.memory import InMemoryDocumentStore
from docstore_backup.adapters.postgres import AsyncPostgresDocumentStore

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "AsyncPostgresDocumentStore",
]
