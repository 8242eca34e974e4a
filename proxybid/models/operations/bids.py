"""
Bid ledger operations.

Bids are append-only: a submission always inserts a new document and only
``displayed_amount``, ``status``, ``seq`` and ``resolved_seq`` are rewritten
later. A bid competes once its id is in the auction's committed ``bid_ids``;
until a resolution stamps it, it stays ``pending`` and is left out of
ledger queries.
"""

import logging
from typing import Iterable, List, Optional, Set
from datetime import datetime

from proxybid.clients import DocumentConflict, DocumentStoreUnavailable
from proxybid.core.resolver import Resolution
from proxybid.models.entities.auctions import Auction
from proxybid.models.entities.bids import Bid, BidData

logger = logging.getLogger(__name__)


async def bid_append(
    auction_id: str,
    bidder_id: str,
    ceiling: float,
    displayed_amount: float,
    placed_at: datetime,
    seq: int = 0,
) -> Bid:
    data = BidData(
        auction_id=auction_id,
        bidder_id=bidder_id,
        ceiling=ceiling,
        displayed_amount=displayed_amount,
        placed_at=placed_at,
        seq=seq,
    )
    return await Bid.create(data, user_id=bidder_id)


async def bid_discard(bid_id: str, auction_id: str) -> bool:
    """Remove a bid that is not part of its auction's committed ledger.

    Membership is read from the auction document, so a bid that a commit
    already admitted is kept even if no resolution has stamped it yet. When
    the store cannot be reached the bid is left ``pending``; it never
    competes unless a commit admitted it.
    """
    try:
        auction = await Auction.get(auction_id)
        if auction and bid_id in auction.data.bid_ids:
            logger.warning(f"Bid {bid_id} is in the committed ledger of auction {auction_id}, keeping it")
            return False
        return await Bid.delete(bid_id)
    except DocumentStoreUnavailable as e:
        logger.warning(f"Could not discard bid {bid_id}, leaving it pending: {e}")
        return False


async def bid_get(bid_id: str) -> Optional[Bid]:
    return await Bid.get(bid_id)


async def bid_get_by_auction(
    auction_id: str,
    status: Optional[str] = None,
    newest_first: bool = False,
    limit: Optional[int] = None,
) -> List[Bid]:
    """Resolved bids for an auction in commit order (or newest first)."""
    filters = {"auction_id": auction_id}
    if status:
        filters["status"] = status
    else:
        filters["status__ne"] = "pending"
    return await Bid.find(
        order_by=[("seq", newest_first), ("placed_at", newest_first)],
        limit=limit,
        **filters,
    )


async def bid_get_by_bidder(bidder_id: str, limit: int = 50) -> List[Bid]:
    """A bidder's bid history, most recent first."""
    return await Bid.find(
        order_by=[("placed_at", True)],
        limit=limit,
        bidder_id=bidder_id,
        status__ne="pending",
    )


async def bid_get_highest(auction_id: str) -> Optional[Bid]:
    """Highest displayed live bid; ties go to the most recent submission."""
    bids = await Bid.find(
        order_by=[("displayed_amount", True), ("seq", True)],
        limit=1,
        auction_id=auction_id,
        status="live",
    )
    return bids[0] if bids else None


async def _bid_write(bid: Bid, change) -> Bid:
    """CAS-guarded rewrite of one bid. *change* mutates and returns False to skip."""
    while True:
        if not change(bid.data):
            return bid
        try:
            return await Bid.update(bid)
        except DocumentConflict:
            fresh = await Bid.get(bid.id)
            if fresh is None:
                return bid
            bid = fresh


async def bid_apply_resolution(
    bids: Iterable[Bid],
    resolution: Resolution,
    excluded_bidders: Set[str],
    resolution_seq: int,
) -> List[Bid]:
    """Persist per-bid outcome of a committed resolution.

    *bids* are the committed ledger in commit order; each bid's ``seq`` is
    stamped with its position. A bid already stamped with a newer
    ``resolved_seq`` is left alone, so an older writer finishing late cannot
    overwrite a newer outcome.
    """
    written = []
    for seq, bid in enumerate(bids, start=1):
        excluded = bid.data.bidder_id in excluded_bidders
        amount = resolution.displayed_amounts.get(bid.id, bid.data.displayed_amount)

        def _change(d: BidData, excluded=excluded, amount=amount, seq=seq) -> bool:
            if d.resolved_seq >= resolution_seq:
                return False
            d.status = "excluded" if excluded else "live"
            d.displayed_amount = min(amount, d.ceiling)
            d.seq = seq
            d.resolved_seq = resolution_seq
            return True

        written.append(await _bid_write(bid, _change))
    return written
