from typing import List, Literal

from fastapi import APIRouter, Depends

from proxybid.errors import store_errors
from proxybid.models.operations.orders import order_get_by_buyer, order_get_by_seller
from proxybid.utils import log

from .dependencies import current_user_id
from .schemas import OrderResponse, order_to_response

logger = log.get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/me", response_model=List[OrderResponse])
async def route_orders_mine(
    role: Literal["buyer", "seller"] = "buyer",
    user_id: str = Depends(current_user_id),
):
    """Orders where the caller is the buyer (default) or the seller."""
    with store_errors():
        if role == "seller":
            orders = await order_get_by_seller(user_id)
        else:
            orders = await order_get_by_buyer(user_id)
    return [order_to_response(o) for o in orders]
