from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from couchbase.exceptions import (
    AmbiguousTimeoutException,
    CASMismatchException,
    DocumentExistsException,
    DocumentNotFoundException,
    ServiceUnavailableException,
    TimeoutException,
    UnAmbiguousTimeoutException,
)
from couchbase.options import ReplaceOptions

from ..documents import (
    DocumentCollection,
    DocumentConflict,
    DocumentExists,
    DocumentStoreUnavailable,
    split_filter,
)
from .keyspace import Keyspace, get_keyspace

_OPERATORS = {"eq": "=", "ne": "!=", "lte": "<=", "gte": ">=", "lt": "<", "gt": ">"}


@contextmanager
def _translate_errors(what: str):
    try:
        yield
    except CASMismatchException as e:
        raise DocumentConflict(f"CAS mismatch on {what}") from e
    except DocumentExistsException as e:
        raise DocumentExists(f"Document {what} already exists") from e
    except (
        TimeoutException,
        AmbiguousTimeoutException,
        UnAmbiguousTimeoutException,
        ServiceUnavailableException,
    ) as e:
        raise DocumentStoreUnavailable(f"Couchbase unavailable during {what}: {e}") from e


class CouchbaseCollection(DocumentCollection):
    """Couchbase-backed collection. Queries are N1QL over the keyspace."""

    def __init__(self, name: str, keyspace: Optional[Keyspace] = None):
        self.name = name
        self.keyspace = keyspace or get_keyspace(name)

    async def get(self, key: str) -> Optional[Tuple[Dict[str, Any], int]]:
        with _translate_errors(f"{self.name}/{key}"):
            collection = await self.keyspace.get_collection()
            try:
                result = await collection.get(key)
            except DocumentNotFoundException:
                return None
            return result.content_as[dict], result.cas

    async def insert(self, key: str, doc: Dict[str, Any]) -> int:
        with _translate_errors(f"{self.name}/{key}"):
            collection = await self.keyspace.get_collection()
            result = await collection.insert(key, doc)
            return result.cas

    async def replace(self, key: str, doc: Dict[str, Any], cas: Optional[int] = None) -> int:
        with _translate_errors(f"{self.name}/{key}"):
            collection = await self.keyspace.get_collection()
            if cas:
                result = await collection.replace(key, doc, ReplaceOptions(cas=cas))
            else:
                result = await collection.replace(key, doc)
            return result.cas

    async def remove(self, key: str) -> bool:
        with _translate_errors(f"{self.name}/{key}"):
            collection = await self.keyspace.get_collection()
            try:
                await collection.remove(key)
            except DocumentNotFoundException:
                return False
            return True

    async def find(
        self,
        filters: Dict[str, Any],
        order_by: Optional[List[Tuple[str, bool]]] = None,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, Dict[str, Any], int]]:
        conditions = []
        params: Dict[str, Any] = {}
        for i, (name, value) in enumerate(filters.items()):
            field, op = split_filter(name)
            if value is None:
                conditions.append(f"`{field}` IS {'NOT ' if op == 'ne' else ''}NULL")
                continue
            param = f"p{i}"
            if isinstance(value, datetime):
                conditions.append(f"STR_TO_MILLIS(`{field}`) {_OPERATORS[op]} STR_TO_MILLIS(${param})")
                params[param] = value.isoformat()
            else:
                conditions.append(f"`{field}` {_OPERATORS[op]} ${param}")
                params[param] = value

        where = " AND ".join(conditions) if conditions else "TRUE"
        query = f"SELECT META(d).id AS id, META(d).cas AS cas, d AS doc FROM {self.keyspace} AS d WHERE {where}"
        if order_by:
            query += " ORDER BY " + ", ".join(
                f"`{field}` {'DESC' if descending else 'ASC'}" for field, descending in order_by
            )
        if limit is not None:
            query += f" LIMIT {int(limit)}"

        with _translate_errors(f"query on {self.name}"):
            rows = await self.keyspace.query(query, **params)
        return [(row["id"], row["doc"], row.get("cas")) for row in rows if row.get("doc")]
