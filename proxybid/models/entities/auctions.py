from typing import List, Optional, Literal
from datetime import datetime
from pydantic import BaseModel, Field
from proxybid.clients import BaseModelDocument, BaseEntityData


class AuctionConfig(BaseModel):
    """Immutable auction parameters set at creation time."""
    starting_price: float = Field(gt=0)
    min_bid_increment: float = Field(gt=0)
    buy_now_price: Optional[float] = None
    auto_extend: bool = False


AuctionStatus = Literal["scheduled", "active", "closed"]


class AuctionData(BaseEntityData):
    # Ownership
    seller_id: str
    title: str = ""

    # Auction config (immutable after creation)
    config: AuctionConfig

    # Schedule
    starts_at: datetime
    ends_at: datetime
    effective_ends_at: datetime  # only ever moves forward via auto-extend
    extensions_count: int = 0

    status: AuctionStatus = "scheduled"

    # Resolved competition state (rewritten atomically via CAS after each resolution)
    current_price: float
    current_leader_id: Optional[str] = None
    current_leader_bid_id: Optional[str] = None
    bid_count: int = 0
    bid_ids: List[str] = Field(default_factory=list)  # committed ledger, in commit order
    excluded_bidders: List[str] = Field(default_factory=list)
    resolution_seq: int = 0

    # Lifecycle bookkeeping
    closed_at: Optional[datetime] = None
    finalization_notified: bool = False
    no_bid_notified: bool = False
    winner_id: Optional[str] = None
    order_id: Optional[str] = None


class Auction(BaseModelDocument[AuctionData]):
    _collection_name = "auctions"
