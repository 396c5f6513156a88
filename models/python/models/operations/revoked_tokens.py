import hashlib
from datetime import datetime, timezone

from couchbase.exceptions import DocumentExistsException

from models.entities.couchbase.revoked_tokens import RevokedToken, RevokedTokenData


def token_key(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def token_revoke(token: str, user_id: str, expires_at: datetime) -> None:
    """Record a logged-out token until it would have expired anyway."""
    remaining = expires_at - datetime.now(timezone.utc)
    if remaining.total_seconds() <= 0:
        return
    data = RevokedTokenData(user_id=user_id, expires_at=expires_at)
    try:
        await RevokedToken.create(data, key=token_key(token), user_id=user_id, expiry=remaining)
    except DocumentExistsException:
        pass  # already revoked


async def token_is_revoked(token: str) -> bool:
    return await RevokedToken.get(token_key(token)) is not None
