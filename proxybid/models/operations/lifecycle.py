"""
Auction lifecycle passes, run once per scheduler tick.

Each pass queries its candidate auctions and processes them with bounded
concurrency. Every per-auction step is a CAS-guarded transition that is a
no-op when repeated, so a crashed or duplicated tick never double-applies.
A failure on one auction is logged and the batch carries on.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from proxybid.core.notifications import NotificationDispatcher, get_dispatcher
from proxybid.models.entities.auctions import Auction
from proxybid.models.operations.auctions import (
    as_utc,
    auction_activate,
    auction_close,
    auction_mark_finalized,
    auction_mark_no_bid_notified,
)
from proxybid.models.operations.orders import order_create_for_auction

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 8
PASSES = ("activate", "close", "finalize", "no_bids")


@dataclass
class PassResult:
    candidates: int = 0
    processed: int = 0
    failed: List[str] = field(default_factory=list)


@dataclass
class TickReport:
    started_at: datetime
    passes: Dict[str, PassResult] = field(default_factory=dict)

    @property
    def failed(self) -> int:
        return sum(len(p.failed) for p in self.passes.values())


async def _run_pass(
    name: str,
    auctions: List[Auction],
    handler: Callable[[Auction], Awaitable[bool]],
    concurrency: int,
) -> PassResult:
    result = PassResult(candidates=len(auctions))
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _one(auction: Auction) -> None:
        async with semaphore:
            try:
                if await handler(auction):
                    result.processed += 1
            except Exception as e:
                result.failed.append(auction.id)
                logger.error(f"Lifecycle pass '{name}' failed for auction {auction.id}: {e}", exc_info=True)

    await asyncio.gather(*(_one(a) for a in auctions))
    if result.candidates:
        logger.info(
            f"Lifecycle pass '{name}': {result.processed}/{result.candidates} processed, "
            f"{len(result.failed)} failed"
        )
    return result


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------

async def lifecycle_activate_due(now: datetime, concurrency: int = DEFAULT_CONCURRENCY) -> PassResult:
    due = await Auction.find(order_by=[("starts_at", False)], status="scheduled", starts_at__lte=now)

    async def _activate(auction: Auction) -> bool:
        return await auction_activate(auction.id, now) is not None

    return await _run_pass("activate", due, _activate, concurrency)


async def lifecycle_close_expired(now: datetime, concurrency: int = DEFAULT_CONCURRENCY) -> PassResult:
    expired = await Auction.find(
        order_by=[("effective_ends_at", False)], status="active", effective_ends_at__lte=now
    )

    async def _close(auction: Auction) -> bool:
        closed = await auction_close(auction.id, now)
        if closed:
            logger.info(
                f"Auction {auction.id} closed at {closed.data.current_price} "
                f"(leader: {closed.data.current_leader_id})"
            )
        return closed is not None

    return await _run_pass("close", expired, _close, concurrency)


async def lifecycle_finalize_closed(
    dispatcher: NotificationDispatcher,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> PassResult:
    """Create the winner's order and notify winner and seller, once per auction.

    The order insert is idempotent on the auction id and the
    ``finalization_notified`` flag is set with CAS; only the caller that
    flips the flag sends notifications.
    """
    closed = await Auction.find(
        order_by=[("closed_at", False)],
        status="closed",
        finalization_notified=False,
        current_leader_id__ne=None,
    )

    async def _finalize(auction: Auction) -> bool:
        order = await order_create_for_auction(auction)
        d = auction.data
        marked = await auction_mark_finalized(auction.id, d.current_leader_id, order.id)
        if marked is None:
            return False
        price = order.data.final_price
        dispatcher.dispatch("auction_won", order.data.buyer_id, marked, price)
        dispatcher.dispatch("auction_sold", d.seller_id, marked, price, order.data.buyer_id)
        logger.info(f"Auction {auction.id} finalized: winner={order.data.buyer_id} price={price}")
        return True

    return await _run_pass("finalize", closed, _finalize, concurrency)


async def lifecycle_notify_no_bids(
    dispatcher: NotificationDispatcher,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> PassResult:
    unsold = await Auction.find(
        order_by=[("closed_at", False)],
        status="closed",
        no_bid_notified=False,
        current_leader_id=None,
    )

    async def _notify(auction: Auction) -> bool:
        marked = await auction_mark_no_bid_notified(auction.id)
        if marked is None:
            return False
        dispatcher.dispatch("no_bids", marked.data.seller_id, marked)
        return True

    return await _run_pass("no_bids", unsold, _notify, concurrency)


async def lifecycle_run_tick(
    now: Optional[datetime] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> TickReport:
    """Run activate, close, finalize and no-bid passes in that order."""
    now = as_utc(now) if now else datetime.now(timezone.utc)
    dispatcher = dispatcher or get_dispatcher()
    report = TickReport(started_at=now)

    runs = {
        "activate": lambda: lifecycle_activate_due(now, concurrency),
        "close": lambda: lifecycle_close_expired(now, concurrency),
        "finalize": lambda: lifecycle_finalize_closed(dispatcher, concurrency),
        "no_bids": lambda: lifecycle_notify_no_bids(dispatcher, concurrency),
    }
    for name in PASSES:
        try:
            report.passes[name] = await runs[name]()
        except Exception as e:
            logger.error(f"Lifecycle pass '{name}' aborted: {e}", exc_info=True)
            report.passes[name] = PassResult()

    return report
