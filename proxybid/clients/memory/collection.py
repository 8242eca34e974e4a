import copy
import itertools
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..documents import (
    DocumentCollection,
    DocumentConflict,
    DocumentExists,
    split_filter,
)

_cas_counter = itertools.count(1)


def _comparable(doc_value: Any, filter_value: Any) -> Tuple[Any, Any]:
    # Datetimes are stored in their JSON form; compare them as instants.
    if isinstance(filter_value, datetime) and isinstance(doc_value, str):
        return datetime.fromisoformat(doc_value), filter_value
    if isinstance(filter_value, str) and isinstance(doc_value, datetime):
        return doc_value, datetime.fromisoformat(filter_value)
    return doc_value, filter_value


def _matches(doc: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    for name, expected in filters.items():
        field, op = split_filter(name)
        actual = doc.get(field)
        if op == "eq":
            if expected is None:
                if actual is not None:
                    return False
                continue
            if actual is None:
                return False
            actual, expected = _comparable(actual, expected)
            if actual != expected:
                return False
        elif op == "ne":
            if actual is None and expected is None:
                return False
            if actual is None or expected is None:
                continue
            actual, expected = _comparable(actual, expected)
            if actual == expected:
                return False
        else:
            if actual is None:
                return False
            actual, expected = _comparable(actual, expected)
            if op == "lte" and not actual <= expected:
                return False
            if op == "gte" and not actual >= expected:
                return False
            if op == "lt" and not actual < expected:
                return False
            if op == "gt" and not actual > expected:
                return False
    return True


class MemoryCollection(DocumentCollection):
    """In-process document collection with Couchbase-like CAS semantics.

    Each method body runs without awaiting, so it is atomic with respect to
    other coroutines on the same event loop.
    """

    def __init__(self, name: str):
        self.name = name
        self._docs: Dict[str, Tuple[Dict[str, Any], int]] = {}

    async def get(self, key: str) -> Optional[Tuple[Dict[str, Any], int]]:
        entry = self._docs.get(key)
        if entry is None:
            return None
        doc, cas = entry
        return copy.deepcopy(doc), cas

    async def insert(self, key: str, doc: Dict[str, Any]) -> int:
        if key in self._docs:
            raise DocumentExists(f"Document {self.name}/{key} already exists")
        cas = next(_cas_counter)
        self._docs[key] = (copy.deepcopy(doc), cas)
        return cas

    async def replace(self, key: str, doc: Dict[str, Any], cas: Optional[int] = None) -> int:
        entry = self._docs.get(key)
        if entry is None:
            raise KeyError(f"Document {self.name}/{key} not found")
        if cas is not None and entry[1] != cas:
            raise DocumentConflict(f"CAS mismatch on {self.name}/{key}")
        new_cas = next(_cas_counter)
        self._docs[key] = (copy.deepcopy(doc), new_cas)
        return new_cas

    async def remove(self, key: str) -> bool:
        return self._docs.pop(key, None) is not None

    async def find(
        self,
        filters: Dict[str, Any],
        order_by: Optional[List[Tuple[str, bool]]] = None,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, Dict[str, Any], int]]:
        rows = [
            (key, copy.deepcopy(doc), cas)
            for key, (doc, cas) in self._docs.items()
            if _matches(doc, filters)
        ]
        # Stable sorts applied from the least significant key outwards.
        for field, descending in reversed(order_by or []):
            rows.sort(
                key=lambda row: (row[1].get(field) is None, row[1].get(field)),
                reverse=descending,
            )
        if limit is not None:
            rows = rows[:limit]
        return rows
