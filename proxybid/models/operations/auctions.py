"""
Auction records: creation, queries and CAS-guarded lifecycle transitions.

Every write to an auction document goes through a read-modify-write with
CAS (see ``_auction_cas_retry``) so that price/leader/end-time and the
lifecycle flags never lose a concurrent update.
"""

import asyncio
import logging
from typing import Callable, List, Optional
from datetime import datetime, timezone

from proxybid.clients import DocumentConflict
from proxybid.errors import Conflict, NotFound, ValidationError
from proxybid.models.entities.auctions import Auction, AuctionData, AuctionConfig

logger = logging.getLogger(__name__)

CAS_MAX_RETRIES = 5


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# CAS-retry helper
# ---------------------------------------------------------------------------

async def _auction_cas_retry(
    auction_id: str,
    mutator: Callable[[AuctionData], bool],
    max_retries: int = CAS_MAX_RETRIES,
) -> Optional[Auction]:
    """Read-modify-write an auction with CAS-guarded retry.

    *mutator* receives ``AuctionData`` and mutates it in place. It returns
    ``True`` when it changed something worth writing, ``False`` to leave the
    document untouched (the helper then returns ``None``). It may also raise
    an engine error to abort. On a CAS mismatch the helper re-reads and
    retries with exponential backoff (10 ms, 20 ms, 40 ms, ...).
    """
    backoff_ms = 10
    for attempt in range(max_retries + 1):
        auction = await Auction.get(auction_id)
        if not auction:
            raise NotFound(f"Auction {auction_id} not found")

        if not mutator(auction.data):
            return None

        try:
            return await Auction.update(auction)
        except DocumentConflict:
            if attempt == max_retries:
                break
            logger.debug(f"CAS conflict on auction {auction_id}, retry {attempt + 1}")
            await asyncio.sleep(backoff_ms / 1000)
            backoff_ms *= 2

    raise Conflict(f"Concurrent update conflict on auction {auction_id}, please retry")


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def auction_create(
    seller_id: str,
    config: AuctionConfig,
    starts_at: datetime,
    ends_at: datetime,
    title: str = "",
    now: Optional[datetime] = None,
) -> Auction:
    """Create an auction, ``scheduled`` if it starts in the future else ``active``."""
    now = now or datetime.now(timezone.utc)
    starts_at, ends_at = as_utc(starts_at), as_utc(ends_at)
    if ends_at <= starts_at:
        raise ValidationError("Auction must end after it starts")
    if config.buy_now_price is not None and config.buy_now_price < config.starting_price:
        raise ValidationError("Buy-now price cannot be below the starting price")

    data = AuctionData(
        seller_id=seller_id,
        title=title,
        config=config,
        starts_at=starts_at,
        ends_at=ends_at,
        effective_ends_at=ends_at,
        status="scheduled" if starts_at > now else "active",
        current_price=config.starting_price,
    )
    auction = await Auction.create(data, user_id=seller_id)
    logger.info(f"Auction {auction.id} created by {seller_id} ({data.status})")
    return auction


async def auction_get(auction_id: str) -> Optional[Auction]:
    return await Auction.get(auction_id)


async def auction_search(
    status: Optional[str] = "active",
    seller_id: Optional[str] = None,
    limit: Optional[int] = 50,
) -> List[Auction]:
    filters = {}
    if status:
        filters["status"] = status
    if seller_id:
        filters["seller_id"] = seller_id
    return await Auction.find(order_by=[("created_at", True)], limit=limit, **filters)


async def auction_get_by_seller(seller_id: str) -> List[Auction]:
    return await auction_search(status=None, seller_id=seller_id, limit=None)


# ---------------------------------------------------------------------------
# Lifecycle transitions (called by the scheduler passes)
# ---------------------------------------------------------------------------

async def auction_activate(auction_id: str, now: Optional[datetime] = None) -> Optional[Auction]:
    """scheduled -> active once the start time has passed. ``None`` if not applicable."""
    now = now or datetime.now(timezone.utc)

    def _mutate(d: AuctionData) -> bool:
        if d.status != "scheduled" or d.starts_at > now:
            return False
        d.status = "active"
        return True

    return await _auction_cas_retry(auction_id, _mutate)


async def auction_close(auction_id: str, now: Optional[datetime] = None) -> Optional[Auction]:
    """active -> closed once the (possibly extended) end time has passed."""
    now = now or datetime.now(timezone.utc)

    def _mutate(d: AuctionData) -> bool:
        if d.status != "active" or d.effective_ends_at > now:
            return False
        d.status = "closed"
        d.closed_at = now
        return True

    return await _auction_cas_retry(auction_id, _mutate)


async def auction_mark_finalized(auction_id: str, winner_id: str, order_id: str) -> Optional[Auction]:
    """Atomically set the finalization flag. Only one caller ever gets the auction back."""

    def _mutate(d: AuctionData) -> bool:
        if d.status != "closed" or d.finalization_notified:
            return False
        d.finalization_notified = True
        d.winner_id = winner_id
        d.order_id = order_id
        return True

    return await _auction_cas_retry(auction_id, _mutate)


async def auction_mark_no_bid_notified(auction_id: str) -> Optional[Auction]:
    """Atomically set the no-bid flag on a closed auction without a leader."""

    def _mutate(d: AuctionData) -> bool:
        if d.status != "closed" or d.no_bid_notified or d.current_leader_id is not None:
            return False
        d.no_bid_notified = True
        return True

    return await _auction_cas_retry(auction_id, _mutate)
