"""
Proxy-bid resolution.

Pure function over an in-memory snapshot of one auction's eligible bids:
picks the leader and the displayed price, and assigns every bid the amount
it currently contributes. No I/O.

Ranking is ceiling descending, then submission order ascending, so on equal
ceilings the earlier bid leads.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional


@dataclass(frozen=True)
class CandidateBid:
    bid_id: str
    bidder_id: str
    ceiling: float
    placed_at: datetime
    seq: int = 0


@dataclass(frozen=True)
class Resolution:
    leader_bid_id: Optional[str]
    leader_id: Optional[str]
    displayed_price: float
    displayed_amounts: Dict[str, float] = field(default_factory=dict)

    @property
    def has_leader(self) -> bool:
        return self.leader_bid_id is not None


def rank(bids: Iterable[CandidateBid]) -> List[CandidateBid]:
    return sorted(bids, key=lambda b: (-b.ceiling, b.placed_at, b.seq))


def resolve(
    bids: Iterable[CandidateBid],
    starting_price: float,
    increment: float,
) -> Resolution:
    ranked = rank(bids)
    if not ranked:
        return Resolution(None, None, starting_price, {})

    leader = ranked[0]
    runner_up = next((b for b in ranked if b.bidder_id != leader.bidder_id), None)

    if runner_up is None:
        # A lone bidder never pays above the floor.
        price = starting_price
    elif runner_up.ceiling == leader.ceiling:
        # Both were willing to pay the cap; the earlier bid takes it at full ceiling.
        price = leader.ceiling
    else:
        price = min(max(round(runner_up.ceiling + increment, 2), starting_price), leader.ceiling)

    amounts: Dict[str, float] = {}
    for bid in ranked:
        if bid.bid_id == leader.bid_id:
            amounts[bid.bid_id] = price
        elif bid.bidder_id == leader.bidder_id:
            # Superseded duplicates of the leader stay at the floor.
            amounts[bid.bid_id] = starting_price
        else:
            amounts[bid.bid_id] = bid.ceiling

    return Resolution(leader.bid_id, leader.bidder_id, price, amounts)
