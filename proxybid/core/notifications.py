"""
Outbound notifications.

Delivery is fire-and-forget: :meth:`NotificationDispatcher.dispatch` schedules
the notifier call on the running loop and returns at once. A failed delivery
is logged as ``NotificationFailure`` and dropped; it can never fail or roll
back the operation that triggered it.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from proxybid.clients.http import request
from proxybid.errors import NotificationFailure
from proxybid.models.entities.auctions import Auction

logger = logging.getLogger(__name__)

EVENTS = (
    "bid_confirmed",
    "new_bid",
    "outbid",
    "bidder_excluded",
    "auction_won",
    "auction_sold",
    "no_bids",
)


class Notifier:
    """Notification collaborator interface. Every method may raise; callers never see it."""

    async def bid_confirmed(self, bidder_id: str, auction: Auction, amount: float) -> None:
        raise NotImplementedError

    async def new_bid(self, seller_id: str, auction: Auction, amount: float, bidder_id: str) -> None:
        raise NotImplementedError

    async def outbid(self, previous_leader_id: str, auction: Auction, amount: float) -> None:
        raise NotImplementedError

    async def bidder_excluded(self, bidder_id: str, auction: Auction) -> None:
        raise NotImplementedError

    async def auction_won(self, winner_id: str, auction: Auction, price: float) -> None:
        raise NotImplementedError

    async def auction_sold(self, seller_id: str, auction: Auction, price: float, winner_id: str) -> None:
        raise NotImplementedError

    async def no_bids(self, seller_id: str, auction: Auction) -> None:
        raise NotImplementedError


class _PayloadNotifier(Notifier):
    """Turns every event into ``(event, recipient, payload)`` for :meth:`send`."""

    async def send(self, event: str, recipient_id: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError

    @staticmethod
    def _auction_payload(auction: Auction) -> Dict[str, Any]:
        return {"auction_id": auction.id, "title": auction.data.title}

    async def bid_confirmed(self, bidder_id, auction, amount):
        await self.send("bid_confirmed", bidder_id, {**self._auction_payload(auction), "amount": amount})

    async def new_bid(self, seller_id, auction, amount, bidder_id):
        await self.send(
            "new_bid", seller_id,
            {**self._auction_payload(auction), "amount": amount, "bidder_id": bidder_id},
        )

    async def outbid(self, previous_leader_id, auction, amount):
        await self.send("outbid", previous_leader_id, {**self._auction_payload(auction), "amount": amount})

    async def bidder_excluded(self, bidder_id, auction):
        await self.send("bidder_excluded", bidder_id, self._auction_payload(auction))

    async def auction_won(self, winner_id, auction, price):
        await self.send("auction_won", winner_id, {**self._auction_payload(auction), "price": price})

    async def auction_sold(self, seller_id, auction, price, winner_id):
        await self.send(
            "auction_sold", seller_id,
            {**self._auction_payload(auction), "price": price, "winner_id": winner_id},
        )

    async def no_bids(self, seller_id, auction):
        await self.send("no_bids", seller_id, self._auction_payload(auction))


class LoggingNotifier(_PayloadNotifier):
    async def send(self, event: str, recipient_id: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Notify {event} -> {recipient_id}: {payload}")


class WebhookNotifier(_PayloadNotifier):
    """POSTs ``{"event", "recipient_id", ...payload}`` as JSON to a single endpoint."""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    async def send(self, event: str, recipient_id: str, payload: Dict[str, Any]) -> None:
        await request(
            "POST",
            self.url,
            json_data={"event": event, "recipient_id": recipient_id, **payload},
            timeout=self.timeout,
        )


class NotificationDispatcher:
    def __init__(self, notifier: Optional[Notifier] = None):
        self.notifier = notifier or LoggingNotifier()
        self._pending: Set[asyncio.Task] = set()

    def dispatch(self, event: str, *args: Any) -> None:
        """Schedule *event* for delivery without awaiting it."""
        if event not in EVENTS:
            raise ValueError(f"Unknown notification event '{event}'")
        task = asyncio.get_running_loop().create_task(self._deliver(event, args))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: str, args: tuple) -> None:
        try:
            await getattr(self.notifier, event)(*args)
        except Exception as e:
            failure = NotificationFailure(f"Notification '{event}' failed: {e}", event=event)
            logger.warning(failure.message, exc_info=True)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries (shutdown, tests)."""
        if not self._pending:
            return
        _done, not_done = await asyncio.wait(set(self._pending), timeout=timeout)
        if not_done:
            logger.warning(f"{len(not_done)} notification(s) still pending after drain timeout")


_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher


def set_dispatcher(dispatcher: Optional[NotificationDispatcher]) -> None:
    global _dispatcher
    _dispatcher = dispatcher
