from pydantic import Field

from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData
from models.civil_time import CivilTimestamp


class BidData(BaseCouchbaseEntityData):
    auction_id: str
    user_id: str
    bid_amount: float = Field(gt=0)
    timestamp: CivilTimestamp


class Bid(BaseModelCouchbase[BidData]):
    _collection_name = "bids"
