from typing import Literal
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


class UserData(BaseCouchbaseEntityData):
    full_name: str
    email: str
    role: Literal["admin", "dealer", "bidder"] = "bidder"
    is_approved: bool = False


class User(BaseModelCouchbase[UserData]):
    _collection_name = "users"
