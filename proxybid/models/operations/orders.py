import logging
from typing import List, Optional

from proxybid.clients import DocumentExists
from proxybid.models.entities.auctions import Auction
from proxybid.models.entities.orders import Order, OrderData

logger = logging.getLogger(__name__)


async def order_create_for_auction(auction: Auction) -> Order:
    """Create the auction's order for its current leader, or return the existing one.

    The order key is derived from the auction id, so at most one order can
    ever exist per auction no matter how many finalizers race.
    """
    d = auction.data
    if d.current_leader_id is None:
        raise ValueError(f"Auction {auction.id} has no winner to order for")

    key = Order.key_for(auction.id)
    data = OrderData(
        auction_id=auction.id,
        buyer_id=d.current_leader_id,
        seller_id=d.seller_id,
        final_price=d.current_price,
    )
    try:
        order = await Order.create(data, key=key, user_id=d.current_leader_id)
    except DocumentExists:
        existing = await Order.get(key)
        if existing is None:
            raise
        logger.info(f"Order for auction {auction.id} already exists ({existing.id})")
        return existing

    logger.info(
        f"Order {order.id} created: auction={auction.id} buyer={data.buyer_id} "
        f"seller={data.seller_id} price={data.final_price}"
    )
    return order


async def order_get(order_id: str) -> Optional[Order]:
    return await Order.get(order_id)


async def order_get_by_auction(auction_id: str) -> Optional[Order]:
    return await Order.get(Order.key_for(auction_id))


async def order_get_by_buyer(buyer_id: str) -> List[Order]:
    return await Order.find(order_by=[("created_at", True)], buyer_id=buyer_id)


async def order_get_by_seller(seller_id: str) -> List[Order]:
    return await Order.find(order_by=[("created_at", True)], seller_id=seller_id)
