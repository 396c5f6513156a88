import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from couchbase.result import MutationResult
from couchbase.n1ql import QueryScanConsistency
from couchbase.options import InsertOptions, QueryOptions
from .config import get_cluster, DEFAULT_BUCKET_NAME

@dataclass
class Keyspace:
    bucket_name: str
    scope_name: str
    collection_name: str

    def __str__(self) -> str:
        return f"{self.bucket_name}.{self.scope_name}.{self.collection_name}"

    async def query(
        self, query: str, scan_consistency: Optional[QueryScanConsistency] = None, **kwargs
    ) -> list:
        """Run a N1QL statement; keyword arguments become named parameters.

        Pass ``QueryScanConsistency.REQUEST_PLUS`` when the result must include
        every mutation acknowledged before the query started.
        """
        cluster = await get_cluster()
        opts = {}
        if kwargs:
            opts["named_parameters"] = kwargs
        if scan_consistency is not None:
            opts["scan_consistency"] = scan_consistency
        options = QueryOptions(**opts)
        result = cluster.query(query, options)
        return [row async for row in result]

    async def get_collection(self):
        cluster = await get_cluster()
        bucket = cluster.bucket(self.bucket_name)
        return bucket.scope(self.scope_name).collection(self.collection_name)

    async def insert(
        self,
        value: dict,
        key: Optional[str] = None,
        expiry: Optional[timedelta] = None,
    ) -> MutationResult:
        """Insert a new document. Raises DocumentExistsException if *key* is taken.

        *expiry* sets a document TTL, used for records that must vanish on
        their own (revoked credentials).
        """
        if key is None:
            key = str(uuid.uuid4())
        collection = await self.get_collection()
        if expiry is not None:
            return await collection.insert(key, value, InsertOptions(expiry=expiry))
        return await collection.insert(key, value)

def get_keyspace(collection_name: str, scope_name: Optional[str] = "_default", bucket_name: Optional[str] = DEFAULT_BUCKET_NAME) -> Keyspace:
    """
    Create a Keyspace instance with optional scope and bucket parameters.

    Args:
        collection_name: Name of the collection
        scope_name: Name of the scope (defaults to "_default")
        bucket_name: Name of the bucket (defaults to DEFAULT_BUCKET_NAME)

    Returns:
        Keyspace instance
    """
    return Keyspace(bucket_name, scope_name, collection_name)
