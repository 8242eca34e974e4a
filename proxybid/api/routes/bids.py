from typing import List

from fastapi import APIRouter, Depends, Query

from proxybid.errors import store_errors
from proxybid.models.operations.bids import bid_get_by_bidder
from proxybid.utils import log

from .dependencies import current_user_id
from .schemas import BidResponse, bid_to_response

logger = log.get_logger(__name__)

router = APIRouter(prefix="/bids", tags=["bids"])


@router.get("/me", response_model=List[BidResponse])
async def route_bids_mine(
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(current_user_id),
):
    """The caller's own bids across all auctions, most recent first."""
    with store_errors():
        bids = await bid_get_by_bidder(user_id, limit=limit)
    return [bid_to_response(b, user_id) for b in bids]
