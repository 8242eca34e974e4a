"""Tests for the lifecycle scheduler passes."""

import asyncio
from datetime import timedelta
from unittest.mock import patch

import pytest

from conftest import NOW, at
from proxybid.models.entities.orders import Order
from proxybid.models.operations import lifecycle
from proxybid.models.operations.auctions import auction_get
from proxybid.models.operations.bidding import submit_proxy_bid
from proxybid.models.operations.lifecycle import (
    lifecycle_activate_due,
    lifecycle_close_expired,
    lifecycle_finalize_closed,
    lifecycle_notify_no_bids,
    lifecycle_run_tick,
)
from proxybid.models.operations.orders import order_create_for_auction, order_get, order_get_by_auction

AFTER_END = NOW + timedelta(hours=2)


async def _sold_auction(make_auction, dispatcher):
    auction = await make_auction(seller_id="S")
    await submit_proxy_bid(auction.id, "A", 200, dispatcher=dispatcher, now=at(1))
    await submit_proxy_bid(auction.id, "B", 150, dispatcher=dispatcher, now=at(2))
    await dispatcher.drain()
    return auction


class TestActivateAndClose:
    @pytest.mark.asyncio
    async def test_scheduled_auction_activated_when_due(self, make_auction):
        auction = await make_auction(starts_at=NOW + timedelta(minutes=5), ends_at=NOW + timedelta(hours=1))
        assert auction.data.status == "scheduled"

        result = await lifecycle_activate_due(NOW)
        assert result.processed == 0

        result = await lifecycle_activate_due(NOW + timedelta(minutes=5))
        assert result.processed == 1
        assert (await auction_get(auction.id)).data.status == "active"

    @pytest.mark.asyncio
    async def test_close_uses_effective_end_time(self, make_auction, dispatcher):
        end = NOW + timedelta(minutes=4)
        auction = await make_auction(auto_extend=True, ends_at=end)
        await submit_proxy_bid(auction.id, "A", 150, dispatcher=dispatcher, now=NOW)

        result = await lifecycle_close_expired(end + timedelta(minutes=1))
        assert result.processed == 0

        result = await lifecycle_close_expired(end + timedelta(minutes=10))
        assert result.processed == 1
        closed = await auction_get(auction.id)
        assert closed.data.status == "closed"
        assert closed.data.closed_at == end + timedelta(minutes=10)

    @pytest.mark.asyncio
    async def test_passes_are_idempotent(self, make_auction):
        await make_auction()
        assert (await lifecycle_close_expired(AFTER_END)).processed == 1
        assert (await lifecycle_close_expired(AFTER_END)).candidates == 0


class TestFinalize:
    @pytest.mark.asyncio
    async def test_creates_order_for_leader(self, make_auction, dispatcher, notifier):
        auction = await _sold_auction(make_auction, dispatcher)
        await lifecycle_close_expired(AFTER_END)

        result = await lifecycle_finalize_closed(dispatcher)
        await dispatcher.drain()

        assert result.processed == 1
        order = await order_get_by_auction(auction.id)
        assert order.data.buyer_id == "A"
        assert order.data.seller_id == "S"
        assert order.data.final_price == 160
        assert order.data.status == "pending_verification"
        assert order.data.payment_proof_image == ""
        assert order.data.shipping_address == ""

        assert (await order_get(order.id)).data.auction_id == auction.id

        finalized = await auction_get(auction.id)
        assert finalized.data.finalization_notified
        assert finalized.data.winner_id == "A"
        assert finalized.data.order_id == order.id

        assert notifier.events("auction_won") == [("auction_won", "A", (auction.id, 160))]
        assert notifier.events("auction_sold") == [("auction_sold", "S", (auction.id, 160, "A"))]

    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(self, make_auction, dispatcher, notifier):
        auction = await _sold_auction(make_auction, dispatcher)
        await lifecycle_close_expired(AFTER_END)
        await lifecycle_finalize_closed(dispatcher)
        result = await lifecycle_finalize_closed(dispatcher)
        await dispatcher.drain()

        assert result.candidates == 0
        assert len(await Order.find(auction_id=auction.id)) == 1
        assert len(notifier.events("auction_won")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_finalizers_create_one_order(self, make_auction, dispatcher, notifier):
        auction = await _sold_auction(make_auction, dispatcher)
        await lifecycle_close_expired(AFTER_END)

        await asyncio.gather(*(lifecycle_finalize_closed(dispatcher) for _ in range(5)))
        await dispatcher.drain()

        assert len(await Order.find(auction_id=auction.id)) == 1
        assert len(notifier.events("auction_won")) == 1
        assert len(notifier.events("auction_sold")) == 1

    @pytest.mark.asyncio
    async def test_order_creation_is_idempotent(self, make_auction, dispatcher):
        auction = await _sold_auction(make_auction, dispatcher)
        closed = await auction_get(auction.id)
        first = await order_create_for_auction(closed)
        second = await order_create_for_auction(closed)
        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_crash_after_order_before_flag(self, make_auction, dispatcher, notifier):
        """An order left behind by an interrupted run is reused, not duplicated."""
        auction = await _sold_auction(make_auction, dispatcher)
        await lifecycle_close_expired(AFTER_END)
        await order_create_for_auction(await auction_get(auction.id))

        result = await lifecycle_finalize_closed(dispatcher)
        await dispatcher.drain()

        assert result.processed == 1
        assert len(await Order.find(auction_id=auction.id)) == 1
        assert len(notifier.events("auction_won")) == 1

    @pytest.mark.asyncio
    async def test_failure_isolated_per_auction(self, make_auction, dispatcher, notifier):
        good = await _sold_auction(make_auction, dispatcher)
        bad = await _sold_auction(make_auction, dispatcher)
        await lifecycle_close_expired(AFTER_END)

        real_create = lifecycle.order_create_for_auction

        async def flaky_create(auction):
            if auction.id == bad.id:
                raise RuntimeError("store hiccup")
            return await real_create(auction)

        with patch.object(lifecycle, "order_create_for_auction", flaky_create):
            result = await lifecycle_finalize_closed(dispatcher)

        assert result.processed == 1
        assert result.failed == [bad.id]
        assert await order_get_by_auction(good.id) is not None
        assert await order_get_by_auction(bad.id) is None

        # The failed auction is picked up again on the next run
        result = await lifecycle_finalize_closed(dispatcher)
        assert result.processed == 1
        assert await order_get_by_auction(bad.id) is not None


class TestNoBids:
    @pytest.mark.asyncio
    async def test_seller_notified_once(self, make_auction, dispatcher, notifier):
        auction = await make_auction(seller_id="S")
        await lifecycle_close_expired(AFTER_END)

        assert (await lifecycle_notify_no_bids(dispatcher)).processed == 1
        assert (await lifecycle_notify_no_bids(dispatcher)).candidates == 0
        await dispatcher.drain()

        assert notifier.events("no_bids") == [("no_bids", "S", (auction.id,))]
        assert (await auction_get(auction.id)).data.no_bid_notified

    @pytest.mark.asyncio
    async def test_mutually_exclusive_with_finalize(self, make_auction, dispatcher, notifier):
        sold = await _sold_auction(make_auction, dispatcher)
        unsold = await make_auction(seller_id="S")
        await lifecycle_close_expired(AFTER_END)

        finalize = await lifecycle_finalize_closed(dispatcher)
        no_bids = await lifecycle_notify_no_bids(dispatcher)
        await dispatcher.drain()

        assert finalize.processed == 1
        assert no_bids.processed == 1
        assert await order_get_by_auction(unsold.id) is None
        assert [e[2][0] for e in notifier.events("no_bids")] == [unsold.id]
        assert [e[2][0] for e in notifier.events("auction_won")] == [sold.id]


class TestTick:
    @pytest.mark.asyncio
    async def test_full_tick(self, make_auction, dispatcher, notifier):
        sold = await _sold_auction(make_auction, dispatcher)
        unsold = await make_auction(seller_id="S")
        upcoming = await make_auction(starts_at=NOW + timedelta(hours=1), ends_at=NOW + timedelta(hours=3))

        report = await lifecycle_run_tick(now=AFTER_END, dispatcher=dispatcher)
        await dispatcher.drain()

        assert report.failed == 0
        assert report.passes["activate"].processed == 1
        assert report.passes["close"].processed == 2
        assert report.passes["finalize"].processed == 1
        assert report.passes["no_bids"].processed == 1
        assert (await auction_get(upcoming.id)).data.status == "active"
        assert (await auction_get(sold.id)).data.finalization_notified
        assert (await auction_get(unsold.id)).data.no_bid_notified

    @pytest.mark.asyncio
    async def test_failing_pass_does_not_stop_the_others(self, make_auction, dispatcher):
        await make_auction()

        async def broken(*args, **kwargs):
            raise RuntimeError("query failed")

        with patch.object(lifecycle, "lifecycle_activate_due", broken):
            report = await lifecycle_run_tick(now=AFTER_END, dispatcher=dispatcher)

        assert report.passes["activate"].processed == 0
        assert report.passes["close"].processed == 1
        assert report.passes["no_bids"].processed == 1
