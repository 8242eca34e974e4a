"""
The per-auction unit of isolation: snapshot -> resolve -> commit -> apply.

The auction document carries the committed ledger (``bid_ids``) and the
exclusion set, so the snapshot is consistent with the auction version it was
read from. Bids are fetched by key and resolved in memory. The outcome is
committed with a CAS replace of the auction document; a concurrent commit
makes the replace fail and the whole attempt is repeated on fresh data, so
exactly one resolution wins per auction version. Per-bid amounts are written
after the commit, stamped with the auction's ``resolution_seq``.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set

from proxybid.clients import DocumentConflict
from proxybid.core.resolver import CandidateBid, Resolution, resolve
from proxybid.errors import Conflict, NotFound
from proxybid.models.entities.auctions import Auction, AuctionData
from proxybid.models.entities.bids import Bid
from proxybid.models.operations.auctions import CAS_MAX_RETRIES
from proxybid.models.operations.bids import bid_apply_resolution

logger = logging.getLogger(__name__)


@dataclass
class CompetitionSnapshot:
    bids: List[Bid]  # commit order
    excluded_bidders: Set[str]

    def candidates(self) -> List[CandidateBid]:
        return [
            CandidateBid(
                bid_id=b.id,
                bidder_id=b.data.bidder_id,
                ceiling=b.data.ceiling,
                placed_at=b.data.placed_at,
                seq=seq,
            )
            for seq, b in enumerate(self.bids, start=1)
            if b.data.bidder_id not in self.excluded_bidders
        ]


@dataclass
class CompetitionOutcome:
    auction: Auction
    resolution: Resolution
    previous_leader_id: Optional[str]
    previous_price: float
    bids: List[Bid] = field(default_factory=list)

    @property
    def leader_changed(self) -> bool:
        return self.previous_leader_id != self.resolution.leader_id

    @property
    def price(self) -> float:
        return self.resolution.displayed_price


async def competition_snapshot(d: AuctionData) -> CompetitionSnapshot:
    found = await asyncio.gather(*(Bid.get(bid_id) for bid_id in d.bid_ids))
    bids = [b for b in found if b is not None]
    if len(bids) != len(d.bid_ids):
        logger.warning(f"{len(d.bid_ids) - len(bids)} committed bid(s) missing from the ledger")
    return CompetitionSnapshot(bids=bids, excluded_bidders=set(d.excluded_bidders))


async def competition_recalculate(
    auction_id: str,
    prepare: Optional[Callable[[AuctionData], None]] = None,
    mutate: Optional[Callable[[AuctionData], None]] = None,
    max_retries: int = CAS_MAX_RETRIES,
) -> CompetitionOutcome:
    """Re-run the resolver over the auction's eligible bids and commit the result.

    *prepare* sees the freshly read auction on every attempt, before the
    snapshot. It may raise to abort, and it may change ``bid_ids`` or
    ``excluded_bidders`` so the change commits together with its resolution.
    *mutate* applies extra changes after resolving, inside the same CAS write.
    """
    backoff_ms = 10
    for attempt in range(max_retries + 1):
        auction = await Auction.get(auction_id)
        if not auction:
            raise NotFound(f"Auction {auction_id} not found")
        d = auction.data
        previous_leader_id, previous_price = d.current_leader_id, d.current_price
        if prepare:
            prepare(d)

        snapshot = await competition_snapshot(d)
        resolution = resolve(
            snapshot.candidates(),
            d.config.starting_price,
            d.config.min_bid_increment,
        )

        d.current_price = resolution.displayed_price
        d.current_leader_id = resolution.leader_id
        d.current_leader_bid_id = resolution.leader_bid_id
        d.bid_count = len(d.bid_ids)
        d.resolution_seq += 1
        if mutate:
            mutate(d)

        try:
            auction = await Auction.update(auction)
        except DocumentConflict:
            if attempt == max_retries:
                break
            logger.debug(f"Resolution of auction {auction_id} lost CAS race, retry {attempt + 1}")
            await asyncio.sleep(backoff_ms / 1000)
            backoff_ms *= 2
            continue

        bids = await bid_apply_resolution(
            snapshot.bids, resolution, snapshot.excluded_bidders, d.resolution_seq
        )
        return CompetitionOutcome(
            auction=auction,
            resolution=resolution,
            previous_leader_id=previous_leader_id,
            previous_price=previous_price,
            bids=bids,
        )

    raise Conflict(f"Concurrent update conflict on auction {auction_id}, please retry")
