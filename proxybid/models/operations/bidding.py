"""
Proxy-bid submission.

Validation order: auction exists and is active, bidder is not the seller,
bidder is not excluded, ceiling reaches the minimum acceptable bid. An
accepted submission appends a pending ledger row, then admits it into the
auction and re-resolves inside one CAS-guarded commit, which also applies
auto-extension. The checks are repeated against the auction read by each
commit attempt, and a bid whose commit fails is discarded. Notifications go
out afterwards and never affect the result.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from proxybid.core.notifications import NotificationDispatcher, get_dispatcher
from proxybid.core.resolver import Resolution
from proxybid.errors import (
    AuctionEngineError,
    BidderExcluded,
    BidTooLow,
    Forbidden,
    InvalidState,
    NotFound,
    ValidationError,
    store_errors,
)
from proxybid.models.entities.auctions import Auction, AuctionData
from proxybid.models.entities.bids import Bid
from proxybid.models.entities.exclusions import Exclusion
from proxybid.models.operations.auctions import as_utc, auction_get
from proxybid.models.operations.bids import bid_append, bid_discard, bid_get_by_auction
from proxybid.models.operations.competition import competition_recalculate
from proxybid.models.operations.exclusions import exclusion_list
from proxybid.models.operations.settings import AutoExtendSettings, settings_get_auto_extend

logger = logging.getLogger(__name__)


@dataclass
class BidOutcome:
    bid: Bid
    auction: Auction
    resolution: Resolution
    previous_leader_id: Optional[str]
    new_end_time: Optional[datetime] = None

    @property
    def is_leading(self) -> bool:
        return self.resolution.leader_bid_id == self.bid.id


@dataclass
class CompetitionState:
    auction: Auction
    bids: List[Bid] = field(default_factory=list)
    exclusions: List[Exclusion] = field(default_factory=list)


def minimum_acceptable_bid(d: AuctionData) -> float:
    if d.current_leader_id is None:
        return d.config.starting_price
    return round(d.current_price + d.config.min_bid_increment, 2)


def _ensure_biddable(d: AuctionData, now: datetime) -> None:
    if d.status != "active":
        raise InvalidState(f"Auction is not active (status: {d.status})", status=d.status)
    if now >= d.effective_ends_at:
        raise InvalidState("Auction has ended", status=d.status)


def _extension(d: AuctionData, now: datetime, settings: Optional[AutoExtendSettings]) -> Optional[datetime]:
    if settings is None or not d.config.auto_extend:
        return None
    if d.effective_ends_at - now > settings.threshold:
        return None
    return d.effective_ends_at + settings.extension


def _check_admissible(d: AuctionData, bidder_id: str, ceiling: float, now: datetime) -> float:
    """Raise unless *bidder_id* may bid *ceiling* now; return the minimum acceptable bid."""
    _ensure_biddable(d, now)
    if d.seller_id == bidder_id:
        raise Forbidden("Sellers cannot bid on their own auction")
    if bidder_id in d.excluded_bidders:
        raise BidderExcluded("You have been excluded from this auction by the seller")
    minimum = minimum_acceptable_bid(d)
    if ceiling < minimum:
        raise BidTooLow(minimum, ceiling)
    return minimum


async def submit_proxy_bid(
    auction_id: str,
    bidder_id: str,
    ceiling: float,
    dispatcher: Optional[NotificationDispatcher] = None,
    now: Optional[datetime] = None,
) -> BidOutcome:
    if ceiling is None or isinstance(ceiling, bool) or not math.isfinite(ceiling) or ceiling <= 0:
        raise ValidationError("Ceiling must be a positive amount")
    now = as_utc(now) if now else datetime.now(timezone.utc)
    dispatcher = dispatcher or get_dispatcher()

    with store_errors():
        auction = await auction_get(auction_id)
        if not auction:
            raise NotFound(f"Auction {auction_id} not found")
        d = auction.data
        minimum = _check_admissible(d, bidder_id, ceiling, now)
        extend_settings = await settings_get_auto_extend() if d.config.auto_extend else None

        bid = await bid_append(auction_id, bidder_id, ceiling, displayed_amount=minimum, placed_at=now)

    new_end_time: List[Optional[datetime]] = [None]

    def _admit(ad: AuctionData) -> None:
        # Re-checked against the freshly read auction on every attempt.
        _check_admissible(ad, bidder_id, ceiling, now)
        ad.bid_ids.append(bid.id)

    def _extend(ad: AuctionData) -> None:
        new_end_time[0] = _extension(ad, now, extend_settings)
        if new_end_time[0] is not None:
            ad.effective_ends_at = new_end_time[0]
            ad.extensions_count += 1

    try:
        with store_errors():
            outcome = await competition_recalculate(auction_id, prepare=_admit, mutate=_extend)
    except AuctionEngineError:
        await bid_discard(bid.id, auction_id)
        raise

    bid = next((b for b in outcome.bids if b.id == bid.id), bid)
    price = outcome.price
    auction = outcome.auction

    logger.info(
        f"Bid {bid.id} on auction {auction_id}: bidder={bidder_id} ceiling={ceiling} "
        f"price={price} leader={outcome.resolution.leader_id}"
    )
    if new_end_time[0] is not None:
        logger.info(f"Auction {auction_id} auto-extended to {new_end_time[0].isoformat()}")

    dispatcher.dispatch("bid_confirmed", bidder_id, auction, ceiling)
    dispatcher.dispatch("new_bid", auction.data.seller_id, auction, price, bidder_id)
    if outcome.leader_changed and outcome.previous_leader_id:
        dispatcher.dispatch("outbid", outcome.previous_leader_id, auction, price)

    return BidOutcome(
        bid=bid,
        auction=auction,
        resolution=outcome.resolution,
        previous_leader_id=outcome.previous_leader_id,
        new_end_time=new_end_time[0],
    )


async def get_competition_state(auction_id: str) -> CompetitionState:
    with store_errors():
        auction = await auction_get(auction_id)
        if not auction:
            raise NotFound(f"Auction {auction_id} not found")
        return CompetitionState(
            auction=auction,
            bids=await bid_get_by_auction(auction_id, newest_first=True),
            exclusions=await exclusion_list(auction_id),
        )
