from enum import Enum

from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData
from models.civil_time import CivilTimestamp


class NotificationType(str, Enum):
    OUTBID = "outbid"
    INBID = "inbid"
    WIN = "win"


class NotificationData(BaseCouchbaseEntityData):
    user_id: str
    auction_id: str
    message: str
    type: NotificationType
    read: bool = False
    timestamp: CivilTimestamp


class Notification(BaseModelCouchbase[NotificationData]):
    _collection_name = "notifications"


def win_notification_key(auction_id: str) -> str:
    """Deterministic key: a second win notification for the same auction collides."""
    return f"win::{auction_id}"
