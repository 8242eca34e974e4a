"""
Backend-neutral document collection contract.

Entities talk to a ``DocumentCollection``; the concrete backend is chosen
once per process with :func:`configure_backend` (``couchbase`` in
production, ``memory`` for tests and local development).
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

BACKENDS = ("couchbase", "memory")

# Filter suffixes understood by ``find``: field__lte=value etc.
FILTER_OPERATORS = ("eq", "ne", "lte", "gte", "lt", "gt")


class DocumentStoreError(Exception):
    """Base exception for document store clients."""
    pass


class DocumentExists(DocumentStoreError):
    """Raised when inserting a key that is already present."""
    pass


class DocumentConflict(DocumentStoreError):
    """Raised when a CAS-guarded replace loses against a concurrent write."""
    pass


class DocumentStoreUnavailable(DocumentStoreError):
    """Raised on timeouts or connection failures talking to the store."""
    pass


class DocumentCollection(ABC):
    name: str

    @abstractmethod
    async def get(self, key: str) -> Optional[Tuple[Dict[str, Any], int]]:
        """Return ``(document, cas)`` or ``None`` when the key is missing."""

    @abstractmethod
    async def insert(self, key: str, doc: Dict[str, Any]) -> int:
        """Insert a new document, raising ``DocumentExists`` on collision."""

    @abstractmethod
    async def replace(self, key: str, doc: Dict[str, Any], cas: Optional[int] = None) -> int:
        """Replace a document; with *cas* set, raise ``DocumentConflict`` on mismatch."""

    @abstractmethod
    async def remove(self, key: str) -> bool:
        """Remove a document. Returns False if it did not exist."""

    @abstractmethod
    async def find(
        self,
        filters: Dict[str, Any],
        order_by: Optional[List[Tuple[str, bool]]] = None,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, Dict[str, Any], int]]:
        """Return ``(key, document, cas)`` rows matching all *filters*.

        *filters* maps ``field`` or ``field__<op>`` to a JSON-compatible value.
        *order_by* is a list of ``(field, descending)`` pairs.
        """


def split_filter(name: str) -> Tuple[str, str]:
    field, sep, op = name.rpartition("__")
    if sep and op in FILTER_OPERATORS:
        return field, op
    return name, "eq"


_backend: Optional[str] = None
_memory_collections: Dict[str, DocumentCollection] = {}


def configure_backend(backend: str) -> None:
    global _backend
    if backend not in BACKENDS:
        raise ValueError(f"Unknown store backend '{backend}'. Must be one of {BACKENDS}")
    _backend = backend


def get_backend() -> str:
    global _backend
    if _backend is None:
        import os
        configure_backend(os.environ.get("STORE_BACKEND", "couchbase"))
    return _backend


def get_document_collection(collection_name: str) -> DocumentCollection:
    if get_backend() == "memory":
        collection = _memory_collections.get(collection_name)
        if collection is None:
            from .memory import MemoryCollection
            collection = MemoryCollection(collection_name)
            _memory_collections[collection_name] = collection
        return collection

    from .couchbase import CouchbaseCollection
    return CouchbaseCollection(collection_name)


def reset_memory_store() -> None:
    """Drop every in-memory collection (test isolation)."""
    _memory_collections.clear()
