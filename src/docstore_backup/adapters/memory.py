"""In-process ``DocumentStore`` backed by a dict of lists.

Usage:
    from docstore_backup.adapters.memory import InMemoryDocumentStore

    store = InMemoryDocumentStore({"customers": [{"id": 1, "name": "Ada"}]})
    docs = await store.read_all("customers")
"""

import copy
from typing import Any

from docstore_backup import __version__


class InMemoryDocumentStore:
    """Dict-backed implementation of the ``DocumentStore`` protocol.

    Documents are deep-copied on the way in and out so callers never share
    state with the store.

    Args:
        collections: Optional initial contents.
    """

    def __init__(self, collections: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self._collections: dict[str, list[dict[str, Any]]] = copy.deepcopy(collections or {})

    async def list_collections(self) -> list[str]:
        return sorted(self._collections)

    async def read_all(self, name: str) -> list[dict[str, Any]]:
        if name not in self._collections:
            raise KeyError(f"Collection not found: {name}")
        return copy.deepcopy(self._collections[name])

    async def replace_all(self, name: str, documents: list[dict[str, Any]]) -> None:
        self._collections[name] = copy.deepcopy(documents)

    async def exists(self, name: str) -> bool:
        return name in self._collections

    async def server_version(self) -> str:
        return f"memory-{__version__}"

    async def close(self) -> None:
        return None

    def snapshot(self) -> dict[str, list[dict[str, Any]]]:
        """Synchronous deep copy of the whole store."""
        return copy.deepcopy(self._collections)
