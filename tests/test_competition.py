"""Tests for the CAS-guarded resolve-and-commit unit."""

from unittest.mock import patch

import pytest

from conftest import at
from proxybid.clients import DocumentConflict
from proxybid.core.resolver import Resolution
from proxybid.errors import Conflict, InvalidState
from proxybid.models.entities.auctions import Auction
from proxybid.models.entities.bids import Bid
from proxybid.models.operations import bidding
from proxybid.models.operations.auctions import auction_get
from proxybid.models.operations.bids import bid_append, bid_apply_resolution, bid_discard, bid_get, bid_get_by_auction
from proxybid.models.operations.competition import competition_recalculate


def admit(*bids):
    """Prepare hook that adds ledger rows written directly to the committed ledger."""
    def _prepare(d):
        d.bid_ids.extend(b.id for b in bids)
    return _prepare


class TestRecalculate:
    @pytest.mark.asyncio
    async def test_lost_race_is_retried(self, make_auction):
        auction = await make_auction()
        bid = await bid_append(auction.id, "A", 200, displayed_amount=100, placed_at=at(1))

        real_update = Auction.update
        calls = {"n": 0}

        async def racing_update(item):
            calls["n"] += 1
            if calls["n"] == 1:
                raise DocumentConflict("someone else committed first")
            return await real_update(item)

        with patch.object(Auction, "update", racing_update):
            outcome = await competition_recalculate(auction.id, prepare=admit(bid))

        assert calls["n"] == 2
        assert outcome.resolution.leader_id == "A"
        refreshed = await auction_get(auction.id)
        assert refreshed.data.resolution_seq == 1
        assert refreshed.data.bid_ids == [bid.id]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_conflict(self, make_auction):
        auction = await make_auction()

        async def always_conflict(item):
            raise DocumentConflict("busy")

        with patch.object(Auction, "update", always_conflict):
            with pytest.raises(Conflict) as exc_info:
                await competition_recalculate(auction.id, max_retries=2)
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_prepare_sees_fresh_state(self, make_auction):
        auction = await make_auction()
        seen = []

        def prepare(d):
            seen.append(d.status)
            raise InvalidState("closed meanwhile")

        with pytest.raises(InvalidState):
            await competition_recalculate(auction.id, prepare=prepare)
        assert seen == ["active"]

    @pytest.mark.asyncio
    async def test_uncommitted_rows_do_not_compete(self, make_auction):
        auction = await make_auction()
        committed = await bid_append(auction.id, "A", 200, displayed_amount=100, placed_at=at(1))
        await competition_recalculate(auction.id, prepare=admit(committed))
        await bid_append(auction.id, "B", 500, displayed_amount=100, placed_at=at(2))

        outcome = await competition_recalculate(auction.id)

        assert outcome.resolution.leader_id == "A"
        assert outcome.price == 100
        assert [b.data.bidder_id for b in await bid_get_by_auction(auction.id)] == ["A"]

    @pytest.mark.asyncio
    async def test_late_writer_cannot_overwrite_newer_outcome(self, make_auction):
        auction = await make_auction()
        a = await bid_append(auction.id, "A", 200, displayed_amount=100, placed_at=at(1))
        b = await bid_append(auction.id, "B", 150, displayed_amount=110, placed_at=at(2))
        newer = await competition_recalculate(auction.id, prepare=admit(a, b))
        assert newer.price == 160

        stale = Resolution(
            leader_bid_id=newer.resolution.leader_bid_id,
            leader_id="A",
            displayed_price=100,
            displayed_amounts={b.id: 100 for b in newer.bids},
        )
        await bid_apply_resolution(await bid_get_by_auction(auction.id), stale, set(), resolution_seq=0)

        amounts = {b.data.bidder_id: b.data.displayed_amount for b in await bid_get_by_auction(auction.id)}
        assert amounts == {"A": 160, "B": 150}


class TestRollback:
    @pytest.mark.asyncio
    async def test_uncommitted_bid_is_discarded(self, make_auction, dispatcher):
        auction = await make_auction()

        async def closed_meanwhile(*args, **kwargs):
            raise InvalidState("Auction has ended")

        with patch.object(bidding, "competition_recalculate", closed_meanwhile):
            with pytest.raises(InvalidState):
                await bidding.submit_proxy_bid(auction.id, "A", 200, dispatcher=dispatcher, now=at(1))

        assert await Bid.find(auction_id=auction.id) == []

    @pytest.mark.asyncio
    async def test_resolved_bid_is_kept(self, make_auction):
        auction = await make_auction()
        bid = await bid_append(auction.id, "A", 200, displayed_amount=100, placed_at=at(1))
        await competition_recalculate(auction.id, prepare=admit(bid))

        assert await bid_discard(bid.id, auction.id) is False
        assert await bid_get(bid.id) is not None

    @pytest.mark.asyncio
    async def test_admitted_but_unstamped_bid_is_kept(self, make_auction):
        """Membership in the committed ledger decides, not the per-bid stamp."""
        auction = await make_auction()
        bid = await bid_append(auction.id, "A", 200, displayed_amount=100, placed_at=at(1))

        async def not_stamped(bids, *args, **kwargs):
            return list(bids)

        with patch("proxybid.models.operations.competition.bid_apply_resolution", not_stamped):
            await competition_recalculate(auction.id, prepare=admit(bid))

        assert (await bid_get(bid.id)).data.resolved_seq == 0
        assert await bid_discard(bid.id, auction.id) is False
        assert await bid_get(bid.id) is not None
