from proxybid.clients import BaseModelDocument, BaseEntityData


class ExclusionData(BaseEntityData):
    auction_id: str
    bidder_id: str


class Exclusion(BaseModelDocument[ExclusionData]):
    _collection_name = "exclusions"

    @staticmethod
    def key_for(auction_id: str, bidder_id: str) -> str:
        return f"{auction_id}::{bidder_id}"
