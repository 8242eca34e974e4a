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
from .collection import CouchbaseCollection
