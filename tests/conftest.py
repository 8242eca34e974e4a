"""
Shared fixtures: every test runs against a fresh in-memory document store
and a dispatcher whose notifier records what it was asked to send.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Tuple

import pytest

from proxybid.clients import configure_backend, reset_memory_store
from proxybid.core.notifications import NotificationDispatcher, Notifier, set_dispatcher
from proxybid.models.entities.auctions import AuctionConfig
from proxybid.models.operations.auctions import auction_create

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier(Notifier):
    """Records ``(event, recipient_id, args)``; optionally fails chosen events."""

    def __init__(self, fail_on: Tuple[str, ...] = ()):
        self.sent: List[Tuple[str, str, tuple]] = []
        self.fail_on = set(fail_on)

    async def _record(self, event: str, recipient_id: str, *args: Any) -> None:
        if event in self.fail_on:
            raise RuntimeError(f"{event} delivery failed")
        self.sent.append((event, recipient_id, args))

    async def bid_confirmed(self, bidder_id, auction, amount):
        await self._record("bid_confirmed", bidder_id, auction.id, amount)

    async def new_bid(self, seller_id, auction, amount, bidder_id):
        await self._record("new_bid", seller_id, auction.id, amount, bidder_id)

    async def outbid(self, previous_leader_id, auction, amount):
        await self._record("outbid", previous_leader_id, auction.id, amount)

    async def bidder_excluded(self, bidder_id, auction):
        await self._record("bidder_excluded", bidder_id, auction.id)

    async def auction_won(self, winner_id, auction, price):
        await self._record("auction_won", winner_id, auction.id, price)

    async def auction_sold(self, seller_id, auction, price, winner_id):
        await self._record("auction_sold", seller_id, auction.id, price, winner_id)

    async def no_bids(self, seller_id, auction):
        await self._record("no_bids", seller_id, auction.id)

    def events(self, name: Optional[str] = None) -> List[Tuple[str, str, tuple]]:
        return [e for e in self.sent if name is None or e[0] == name]


@pytest.fixture(autouse=True)
def memory_store():
    configure_backend("memory")
    reset_memory_store()
    yield
    reset_memory_store()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier):
    dispatcher = NotificationDispatcher(notifier)
    set_dispatcher(dispatcher)
    yield dispatcher
    set_dispatcher(None)


@pytest.fixture
def make_auction():
    """Factory for auctions that are active at ``NOW`` unless told otherwise."""

    async def _make(
        seller_id: str = "seller",
        starting_price: float = 100,
        increment: float = 10,
        auto_extend: bool = False,
        starts_at: Optional[datetime] = None,
        ends_at: Optional[datetime] = None,
    ):
        return await auction_create(
            seller_id=seller_id,
            config=AuctionConfig(
                starting_price=starting_price,
                min_bid_increment=increment,
                auto_extend=auto_extend,
            ),
            starts_at=starts_at or NOW - timedelta(hours=1),
            ends_at=ends_at or NOW + timedelta(hours=1),
            title="Vintage camera",
            now=NOW,
        )

    return _make


def at(seconds: float) -> datetime:
    """A point in time ``seconds`` after ``NOW``."""
    return NOW + timedelta(seconds=seconds)
