"""
Seller-driven bidder exclusion.

The auction document's ``excluded_bidders`` is the source of truth for
eligibility. It changes only inside the CAS-guarded commit that re-resolves
the auction, so an exclusion takes effect together with the new leader and
price or not at all. Exclusion documents are written after the commit
and record who excluded whom and when.
"""

import logging
from typing import List, Optional

from proxybid.clients import DocumentExists
from proxybid.core.notifications import NotificationDispatcher, get_dispatcher
from proxybid.errors import InvalidState, NotAuctionSeller, NotFound, ValidationError, store_errors
from proxybid.models.entities.auctions import Auction, AuctionData
from proxybid.models.entities.exclusions import Exclusion, ExclusionData
from proxybid.models.operations.competition import CompetitionOutcome, competition_recalculate

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("scheduled", "active")


# ---------------------------------------------------------------------------
# Store operations
# ---------------------------------------------------------------------------

async def exclusion_get(auction_id: str, bidder_id: str) -> Optional[Exclusion]:
    return await Exclusion.get(Exclusion.key_for(auction_id, bidder_id))


async def exclusion_exists(auction_id: str, bidder_id: str) -> bool:
    return await exclusion_get(auction_id, bidder_id) is not None


async def exclusion_list(auction_id: str) -> List[Exclusion]:
    return await Exclusion.find(order_by=[("created_at", False)], auction_id=auction_id)


async def exclusion_create(auction_id: str, bidder_id: str, user_id: Optional[str] = None) -> bool:
    """Add the pair to the exclusion set. Returns ``False`` if it was already there."""
    data = ExclusionData(auction_id=auction_id, bidder_id=bidder_id)
    try:
        await Exclusion.create(data, key=Exclusion.key_for(auction_id, bidder_id), user_id=user_id)
    except DocumentExists:
        return False
    return True


async def exclusion_remove(auction_id: str, bidder_id: str) -> bool:
    return await Exclusion.delete(Exclusion.key_for(auction_id, bidder_id))


# ---------------------------------------------------------------------------
# Service operations
# ---------------------------------------------------------------------------

async def _load_for_seller(auction_id: str, seller_id: str, bidder_id: str) -> Auction:
    auction = await Auction.get(auction_id)
    if not auction:
        raise NotFound(f"Auction {auction_id} not found")
    if auction.data.seller_id != seller_id:
        raise NotAuctionSeller("Only the seller can manage bidders of this auction")
    _ensure_open(auction.data)
    if bidder_id == seller_id:
        raise ValidationError("Sellers cannot exclude themselves")
    return auction


def _ensure_open(d: AuctionData) -> None:
    if d.status not in OPEN_STATUSES:
        raise InvalidState(f"Auction is {d.status}, bidders can no longer be changed", status=d.status)


async def exclude_bidder(
    auction_id: str,
    seller_id: str,
    bidder_id: str,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> CompetitionOutcome:
    """Exclude *bidder_id* and re-resolve as if their bids never existed.

    The price may drop when the excluded bidder was leading. Repeating an
    exclusion re-resolves but sends no second notification.
    """
    dispatcher = dispatcher or get_dispatcher()
    applied = [False]

    def _exclude(ad: AuctionData) -> None:
        _ensure_open(ad)
        applied[0] = bidder_id not in ad.excluded_bidders
        if applied[0]:
            ad.excluded_bidders.append(bidder_id)

    with store_errors():
        await _load_for_seller(auction_id, seller_id, bidder_id)
        outcome = await competition_recalculate(auction_id, prepare=_exclude)

        logger.info(
            f"Bidder {bidder_id} excluded from auction {auction_id} by {seller_id}: "
            f"price {outcome.previous_price} -> {outcome.price}, leader {outcome.resolution.leader_id}"
        )
        if applied[0]:
            dispatcher.dispatch("bidder_excluded", bidder_id, outcome.auction)
        await exclusion_create(auction_id, bidder_id, user_id=seller_id)
    return outcome


async def reinclude_bidder(
    auction_id: str,
    seller_id: str,
    bidder_id: str,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> CompetitionOutcome:
    """Lift an exclusion and restore the bidder's bids to the competition."""

    def _reinclude(ad: AuctionData) -> None:
        _ensure_open(ad)
        if bidder_id in ad.excluded_bidders:
            ad.excluded_bidders.remove(bidder_id)

    with store_errors():
        auction = await _load_for_seller(auction_id, seller_id, bidder_id)
        if bidder_id not in auction.data.excluded_bidders and not await exclusion_exists(auction_id, bidder_id):
            raise NotFound(f"Bidder {bidder_id} is not excluded from auction {auction_id}")
        outcome = await competition_recalculate(auction_id, prepare=_reinclude)
        await exclusion_remove(auction_id, bidder_id)

    logger.info(
        f"Bidder {bidder_id} reincluded in auction {auction_id}: "
        f"price {outcome.previous_price} -> {outcome.price}, leader {outcome.resolution.leader_id}"
    )
    return outcome
