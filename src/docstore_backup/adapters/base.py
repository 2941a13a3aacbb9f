"""Document store protocol definition.

Defines the ``DocumentStore`` Protocol that every store adapter must
implement.  All methods are ``async def`` -- the engine is async-first.

Usage:
    from docstore_backup.adapters.base import DocumentStore

    async def snapshot(store: DocumentStore) -> dict[str, list[dict]]:
        return {
            name: await store.read_all(name)
            for name in await store.list_collections()
        }
"""

from typing import Any, Protocol


class DocumentStore(Protocol):
    """Multi-collection store of schemaless documents.

    The backup engine only ever reads whole collections and replaces whole
    collections; it never merges or patches individual documents.
    """

    async def list_collections(self) -> list[str]:
        """Names of all collections currently in the store.

        Returns:
            Collection names in a stable order.
        """
        ...

    async def read_all(self, name: str) -> list[dict[str, Any]]:
        """Read every document of a collection.

        Args:
            name: Collection name.

        Returns:
            List of documents.  Empty list for an empty collection.

        Raises:
            Exception: Any store error.  The backup orchestrator treats a
                failure here as recoverable and skips the collection.
        """
        ...

    async def replace_all(self, name: str, documents: list[dict[str, Any]]) -> None:
        """Replace a collection's contents.

        Existing documents are removed first, then ``documents`` are
        inserted.  The collection is created if it does not exist.

        Args:
            name: Collection name.
            documents: New contents.
        """
        ...

    async def exists(self, name: str) -> bool:
        """Whether a collection exists."""
        ...

    async def server_version(self) -> str:
        """Version string of the underlying store, recorded in backup metadata."""
        ...

    async def close(self) -> None:
        """Release connections and other resources."""
        ...
