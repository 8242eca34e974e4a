"""Request / response schemas shared by the route modules."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from proxybid.models.entities.auctions import Auction
from proxybid.models.entities.bids import Bid
from proxybid.models.entities.exclusions import Exclusion
from proxybid.models.entities.orders import Order
from proxybid.models.operations.bidding import minimum_acceptable_bid


class AuctionConfigResponse(BaseModel):
    starting_price: float
    min_bid_increment: float
    buy_now_price: Optional[float] = None
    auto_extend: bool


class AuctionResponse(BaseModel):
    id: str
    seller_id: str
    title: str
    config: AuctionConfigResponse
    starts_at: datetime
    ends_at: datetime
    effective_ends_at: datetime
    extensions_count: int
    status: str
    current_price: float
    current_leader_id: Optional[str] = None
    minimum_bid: float
    bid_count: int
    winner_id: Optional[str] = None
    order_id: Optional[str] = None
    closed_at: Optional[datetime] = None


class BidResponse(BaseModel):
    id: str
    auction_id: str
    bidder_id: str
    displayed_amount: float
    # Only ever shown to the bidder who placed it
    ceiling: Optional[float] = None
    placed_at: datetime
    status: str


class ExclusionResponse(BaseModel):
    auction_id: str
    bidder_id: str
    created_at: Optional[datetime] = None


class OrderResponse(BaseModel):
    id: str
    auction_id: str
    buyer_id: str
    seller_id: str
    final_price: float
    status: str
    payment_proof_image: str
    shipping_address: str
    created_at: Optional[datetime] = None


class CompetitionResponse(BaseModel):
    auction: AuctionResponse
    leader_bid_id: Optional[str] = None
    bids: List[BidResponse] = Field(default_factory=list)
    exclusions: List[ExclusionResponse] = Field(default_factory=list)


def auction_to_response(auction: Auction) -> AuctionResponse:
    d = auction.data
    return AuctionResponse(
        id=auction.id,
        seller_id=d.seller_id,
        title=d.title,
        config=AuctionConfigResponse(**d.config.model_dump()),
        starts_at=d.starts_at,
        ends_at=d.ends_at,
        effective_ends_at=d.effective_ends_at,
        extensions_count=d.extensions_count,
        status=d.status,
        current_price=d.current_price,
        current_leader_id=d.current_leader_id,
        minimum_bid=minimum_acceptable_bid(d),
        bid_count=d.bid_count,
        winner_id=d.winner_id,
        order_id=d.order_id,
        closed_at=d.closed_at,
    )


def bid_to_response(bid: Bid, viewer_id: Optional[str] = None) -> BidResponse:
    d = bid.data
    return BidResponse(
        id=bid.id,
        auction_id=d.auction_id,
        bidder_id=d.bidder_id,
        displayed_amount=d.displayed_amount,
        ceiling=d.ceiling if viewer_id == d.bidder_id else None,
        placed_at=d.placed_at,
        status=d.status,
    )


def exclusion_to_response(exclusion: Exclusion) -> ExclusionResponse:
    return ExclusionResponse(
        auction_id=exclusion.data.auction_id,
        bidder_id=exclusion.data.bidder_id,
        created_at=exclusion.data.created_at,
    )


def order_to_response(order: Order) -> OrderResponse:
    d = order.data
    return OrderResponse(
        id=order.id,
        auction_id=d.auction_id,
        buyer_id=d.buyer_id,
        seller_id=d.seller_id,
        final_price=d.final_price,
        status=d.status,
        payment_proof_image=d.payment_proof_image,
        shipping_address=d.shipping_address,
        created_at=d.created_at,
    )
