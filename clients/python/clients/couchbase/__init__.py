from .config import (
    DEFAULT_BUCKET_NAME,
    get_cluster,
    check_connection,
    validate_config,
)
from .keyspace import (
    Keyspace,
    get_keyspace,
)
from .base_model import (
    BaseModelCouchbase,
    BaseCouchbaseEntityData,
    DataT,
    T,
    stamp_write,
)

# External re-exports used by the operations layer
from couchbase.exceptions import CASMismatchException, DocumentExistsException, DocumentNotFoundException
