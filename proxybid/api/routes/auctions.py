"""
API endpoints for auctions and proxy bidding.

POST   /auctions                    - create auction (seller)
GET    /auctions                    - search auctions
GET    /auctions/me                 - seller's own auctions
GET    /auctions/{id}               - auction detail
GET    /auctions/{id}/competition   - bids, leader and exclusions
GET    /auctions/{id}/bids          - bid history, newest first
POST   /auctions/{id}/bids          - submit a proxy bid (ceiling)
GET    /auctions/{id}/order         - order created at finalization
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from proxybid.errors import Forbidden, NotFound, store_errors
from proxybid.models.entities.auctions import AuctionConfig
from proxybid.models.operations.auctions import (
    auction_create,
    auction_get,
    auction_get_by_seller,
    auction_search,
)
from proxybid.models.operations.bidding import get_competition_state, submit_proxy_bid
from proxybid.models.operations.bids import bid_get_by_auction
from proxybid.models.operations.orders import order_get_by_auction
from proxybid.utils import log

from .dependencies import current_user_id, optional_user_id
from .schemas import (
    AuctionResponse,
    BidResponse,
    CompetitionResponse,
    OrderResponse,
    auction_to_response,
    bid_to_response,
    exclusion_to_response,
    order_to_response,
)

logger = log.get_logger(__name__)

router = APIRouter(prefix="/auctions", tags=["auctions"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------

class CreateAuctionRequest(BaseModel):
    title: str = ""
    starting_price: float = Field(gt=0)
    min_bid_increment: float = Field(gt=0)
    buy_now_price: Optional[float] = Field(default=None, gt=0)
    auto_extend: bool = False
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    duration_hours: float = Field(default=48.0, gt=0)


class PlaceBidRequest(BaseModel):
    ceiling: float = Field(gt=0)


class BidOutcomeResponse(BaseModel):
    bid: BidResponse
    auction: AuctionResponse
    is_leading: bool
    new_end_time: Optional[datetime] = None


# ---------------------------------------------------------------------------
# POST /auctions - create auction
# ---------------------------------------------------------------------------

@router.post("", response_model=AuctionResponse, status_code=201)
async def route_auction_create(
    body: CreateAuctionRequest,
    user_id: str = Depends(current_user_id),
):
    """Create an auction; it starts immediately unless ``starts_at`` is in the future."""
    now = datetime.now(timezone.utc)
    starts_at = body.starts_at or now
    ends_at = body.ends_at or starts_at + timedelta(hours=body.duration_hours)

    config = AuctionConfig(
        starting_price=body.starting_price,
        min_bid_increment=body.min_bid_increment,
        buy_now_price=body.buy_now_price,
        auto_extend=body.auto_extend,
    )
    with store_errors():
        auction = await auction_create(
            seller_id=user_id,
            config=config,
            starts_at=starts_at,
            ends_at=ends_at,
            title=body.title,
            now=now,
        )
    return auction_to_response(auction)


# ---------------------------------------------------------------------------
# GET /auctions - search
# ---------------------------------------------------------------------------

@router.get("", response_model=List[AuctionResponse])
async def route_auctions_search(
    status: Optional[str] = "active",
    seller_id: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=100),
):
    with store_errors():
        auctions = await auction_search(status=status, seller_id=seller_id, limit=limit)
    return [auction_to_response(a) for a in auctions]


# ---------------------------------------------------------------------------
# GET /auctions/me - seller's own auctions
# ---------------------------------------------------------------------------

@router.get("/me", response_model=List[AuctionResponse])
async def route_auctions_mine(user_id: str = Depends(current_user_id)):
    """List the caller's own auctions in every status."""
    with store_errors():
        auctions = await auction_get_by_seller(user_id)
    return [auction_to_response(a) for a in auctions]


# ---------------------------------------------------------------------------
# GET /auctions/{id} - detail
# ---------------------------------------------------------------------------

@router.get("/{auction_id}", response_model=AuctionResponse)
async def route_auction_detail(auction_id: str):
    with store_errors():
        auction = await auction_get(auction_id)
    if not auction:
        raise NotFound(f"Auction {auction_id} not found")
    return auction_to_response(auction)


# ---------------------------------------------------------------------------
# GET /auctions/{id}/competition - competition state
# ---------------------------------------------------------------------------

@router.get("/{auction_id}/competition", response_model=CompetitionResponse)
async def route_auction_competition(
    auction_id: str,
    viewer_id: Optional[str] = Depends(optional_user_id),
):
    """Current leader, every bid (ceilings hidden from others) and the exclusion list."""
    state = await get_competition_state(auction_id)
    return CompetitionResponse(
        auction=auction_to_response(state.auction),
        leader_bid_id=state.auction.data.current_leader_bid_id,
        bids=[bid_to_response(b, viewer_id) for b in state.bids],
        exclusions=[exclusion_to_response(e) for e in state.exclusions],
    )


# ---------------------------------------------------------------------------
# GET /auctions/{id}/bids - bid history
# ---------------------------------------------------------------------------

@router.get("/{auction_id}/bids", response_model=List[BidResponse])
async def route_auction_bids(
    auction_id: str,
    status: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    viewer_id: Optional[str] = Depends(optional_user_id),
):
    """Bid history for an auction, newest first."""
    with store_errors():
        auction = await auction_get(auction_id)
        if not auction:
            raise NotFound(f"Auction {auction_id} not found")
        bids = await bid_get_by_auction(auction_id, status=status, newest_first=True, limit=limit)
    return [bid_to_response(b, viewer_id) for b in bids]


# ---------------------------------------------------------------------------
# POST /auctions/{id}/bids - submit proxy bid
# ---------------------------------------------------------------------------

@router.post("/{auction_id}/bids", response_model=BidOutcomeResponse, status_code=201)
async def route_place_bid(
    auction_id: str,
    body: PlaceBidRequest,
    user_id: str = Depends(current_user_id),
):
    """Submit a proxy bid. The ceiling is never shown to other bidders."""
    outcome = await submit_proxy_bid(auction_id, user_id, body.ceiling)
    return BidOutcomeResponse(
        bid=bid_to_response(outcome.bid, user_id),
        auction=auction_to_response(outcome.auction),
        is_leading=outcome.is_leading,
        new_end_time=outcome.new_end_time,
    )


# ---------------------------------------------------------------------------
# GET /auctions/{id}/order - finalization order
# ---------------------------------------------------------------------------

@router.get("/{auction_id}/order", response_model=OrderResponse)
async def route_auction_order(
    auction_id: str,
    user_id: str = Depends(current_user_id),
):
    """The auction's order, visible to its buyer and seller."""
    with store_errors():
        order = await order_get_by_auction(auction_id)
    if not order:
        raise NotFound(f"No order for auction {auction_id}")
    if user_id not in (order.data.buyer_id, order.data.seller_id):
        raise Forbidden("Not a party to this order")
    return order_to_response(order)
