from typing import List, Optional

from models.entities.couchbase.notifications import Notification, NotificationData


async def notification_create(data: NotificationData, key: Optional[str] = None) -> Notification:
    """Insert a notification. With a fixed *key* a repeat insert raises DocumentExistsException."""
    return await Notification.create(data, key=key)


async def notification_get_by_user(user_id: str, limit: int = 50) -> List[Notification]:
    keyspace = Notification.get_keyspace()
    query = (
        f"SELECT META().id, * FROM {keyspace} "
        f"WHERE user_id = $user_id "
        f"ORDER BY `timestamp` DESC "
        f"LIMIT {limit}"
    )
    rows = await keyspace.query(query, user_id=user_id)
    return [
        Notification(id=row["id"], data=row.get("notifications"))
        for row in rows if row.get("notifications")
    ]


async def notification_mark_read(notification_id: str, user_id: str) -> Optional[Notification]:
    """Mark one of *user_id*'s notifications read; None if absent or not theirs."""
    notification = await Notification.get(notification_id)
    if not notification or notification.data.user_id != user_id:
        return None
    if notification.data.read:
        return notification
    notification.data.read = True
    return await Notification.update(notification)
