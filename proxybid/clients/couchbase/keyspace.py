from dataclasses import dataclass
from typing import Optional

from couchbase.options import QueryOptions

from .config import get_cluster, DEFAULT_BUCKET_NAME


@dataclass
class Keyspace:
    bucket_name: str
    scope_name: str
    collection_name: str

    def __str__(self) -> str:
        return f"`{self.bucket_name}`.`{self.scope_name}`.`{self.collection_name}`"

    async def query(self, query: str, **params) -> list:
        cluster = await get_cluster()
        result = cluster.query(query, QueryOptions(named_parameters=params))
        return [row async for row in result]

    async def get_collection(self):
        cluster = await get_cluster()
        bucket = cluster.bucket(self.bucket_name)
        return bucket.scope(self.scope_name).collection(self.collection_name)


def get_keyspace(collection_name: str, scope_name: str = "_default", bucket_name: Optional[str] = None) -> Keyspace:
    return Keyspace(bucket_name or DEFAULT_BUCKET_NAME, scope_name, collection_name)
