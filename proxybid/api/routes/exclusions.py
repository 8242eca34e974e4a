"""
Seller-only bidder management.

GET    /auctions/{id}/exclusions               - excluded bidders
POST   /auctions/{id}/exclusions               - exclude a bidder
DELETE /auctions/{id}/exclusions/{bidder_id}   - reinclude a bidder
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from proxybid.errors import NotAuctionSeller, NotFound, store_errors
from proxybid.models.operations.auctions import auction_get
from proxybid.models.operations.competition import CompetitionOutcome
from proxybid.models.operations.exclusions import exclude_bidder, exclusion_list, reinclude_bidder
from proxybid.utils import log

from .dependencies import current_user_id
from .schemas import AuctionResponse, ExclusionResponse, auction_to_response, exclusion_to_response

logger = log.get_logger(__name__)

router = APIRouter(prefix="/auctions/{auction_id}/exclusions", tags=["exclusions"])


class ExcludeBidderRequest(BaseModel):
    bidder_id: str


class CompetitionOutcomeResponse(BaseModel):
    auction: AuctionResponse
    previous_leader_id: Optional[str] = None
    previous_price: float
    leader_changed: bool


def _outcome_to_response(outcome: CompetitionOutcome) -> CompetitionOutcomeResponse:
    return CompetitionOutcomeResponse(
        auction=auction_to_response(outcome.auction),
        previous_leader_id=outcome.previous_leader_id,
        previous_price=outcome.previous_price,
        leader_changed=outcome.leader_changed,
    )


@router.get("", response_model=List[ExclusionResponse])
async def route_exclusions_list(
    auction_id: str,
    user_id: str = Depends(current_user_id),
):
    with store_errors():
        auction = await auction_get(auction_id)
        if not auction:
            raise NotFound(f"Auction {auction_id} not found")
        if auction.data.seller_id != user_id:
            raise NotAuctionSeller("Only the seller can view exclusions")
        exclusions = await exclusion_list(auction_id)
    return [exclusion_to_response(e) for e in exclusions]


@router.post("", response_model=CompetitionOutcomeResponse, status_code=201)
async def route_exclude_bidder(
    auction_id: str,
    body: ExcludeBidderRequest,
    user_id: str = Depends(current_user_id),
):
    outcome = await exclude_bidder(auction_id, user_id, body.bidder_id)
    return _outcome_to_response(outcome)


@router.delete("/{bidder_id}", response_model=CompetitionOutcomeResponse)
async def route_reinclude_bidder(
    auction_id: str,
    bidder_id: str,
    user_id: str = Depends(current_user_id),
):
    outcome = await reinclude_bidder(auction_id, user_id, bidder_id)
    return _outcome_to_response(outcome)
