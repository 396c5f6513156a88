from typing import List, Optional

from models.entities.couchbase.users import User


async def user_get(user_id: str) -> Optional[User]:
    return await User.get(user_id)


async def user_get_pending(limit: int = 100) -> List[User]:
    """Accounts still waiting for admin approval, oldest first."""
    keyspace = User.get_keyspace()
    query = (
        f"SELECT META().id, * FROM {keyspace} "
        f"WHERE is_approved = false OR is_approved IS MISSING "
        f"ORDER BY created_at ASC "
        f"LIMIT {limit}"
    )
    rows = await keyspace.query(query)
    return [
        User(id=row["id"], data=row.get("users"))
        for row in rows if row.get("users")
    ]


async def user_replace(user: User) -> User:
    """CAS-guarded replace. Raises CASMismatchException on a stale read."""
    return await User.update(user)


async def user_delete(user_id: str) -> bool:
    return await User.delete(user_id)
