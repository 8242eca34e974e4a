from typing import Optional, Literal
from datetime import datetime
from proxybid.clients import BaseModelDocument, BaseEntityData


class OrderData(BaseEntityData):
    auction_id: str
    buyer_id: str
    seller_id: str
    final_price: float
    status: Literal[
        "pending_verification",
        "delivering",
        "await_rating",
        "completed",
        "cancelled",
    ] = "pending_verification"
    payment_proof_image: str = ""
    shipping_address: str = ""
    completed_at: Optional[datetime] = None


class Order(BaseModelDocument[OrderData]):
    _collection_name = "orders"

    @staticmethod
    def key_for(auction_id: str) -> str:
        # One order per auction: the key itself enforces uniqueness.
        return f"auction::{auction_id}"
