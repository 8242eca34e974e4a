"""Query building of the Couchbase collection, against a stub keyspace."""

from datetime import datetime, timezone

import pytest

from proxybid.clients.couchbase import CouchbaseCollection


class StubKeyspace:
    def __init__(self, rows=None):
        self.rows = rows or []
        self.calls = []

    def __str__(self):
        return "`market`.`_default`.`auctions`"

    async def query(self, query, **params):
        self.calls.append((query, params))
        return self.rows


class TestFind:
    @pytest.mark.asyncio
    async def test_builds_filtered_ordered_query(self):
        keyspace = StubKeyspace()
        collection = CouchbaseCollection("auctions", keyspace=keyspace)
        cutoff = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

        await collection.find(
            {"status": "active", "effective_ends_at__lte": cutoff, "current_leader_id__ne": None},
            order_by=[("effective_ends_at", False), ("created_at", True)],
            limit=20,
        )

        query, params = keyspace.calls[0]
        assert query == (
            "SELECT META(d).id AS id, META(d).cas AS cas, d AS doc "
            "FROM `market`.`_default`.`auctions` AS d "
            "WHERE `status` = $p0 "
            "AND STR_TO_MILLIS(`effective_ends_at`) <= STR_TO_MILLIS($p1) "
            "AND `current_leader_id` IS NOT NULL "
            "ORDER BY `effective_ends_at` ASC, `created_at` DESC LIMIT 20"
        )
        assert params == {"p0": "active", "p1": cutoff.isoformat()}

    @pytest.mark.asyncio
    async def test_null_equality_and_rows(self):
        keyspace = StubKeyspace(rows=[
            {"id": "a1", "cas": 42, "doc": {"status": "closed"}},
            {"id": "gone", "cas": 7, "doc": None},
        ])
        collection = CouchbaseCollection("auctions", keyspace=keyspace)

        rows = await collection.find({"current_leader_id": None})

        assert "`current_leader_id` IS NULL" in keyspace.calls[0][0]
        assert rows == [("a1", {"status": "closed"}, 42)]

    @pytest.mark.asyncio
    async def test_no_filters(self):
        keyspace = StubKeyspace()
        await CouchbaseCollection("auctions", keyspace=keyspace).find({})
        assert keyspace.calls[0][0].endswith("WHERE TRUE")
