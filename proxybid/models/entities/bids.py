from typing import Literal
from datetime import datetime
from proxybid.clients import BaseModelDocument, BaseEntityData


class BidData(BaseEntityData):
    auction_id: str
    bidder_id: str
    ceiling: float  # proxy maximum authorised by the bidder, immutable
    displayed_amount: float  # rewritten by every resolution, always <= ceiling
    placed_at: datetime
    seq: int = 0  # per-auction commit order, breaks timestamp ties
    status: Literal["pending", "live", "excluded"] = "pending"  # pending until a resolution stamps it
    resolved_seq: int = 0  # auction resolution_seq that last wrote this bid


class Bid(BaseModelDocument[BidData]):
    _collection_name = "bids"
