from datetime import datetime

from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


class RevokedTokenData(BaseCouchbaseEntityData):
    user_id: str
    expires_at: datetime


class RevokedToken(BaseModelCouchbase[RevokedTokenData]):
    """Keyed by the SHA-256 hex digest of the bearer token; expires with it."""
    _collection_name = "revoked_tokens"
