from .documents import (
    DocumentCollection,
    DocumentStoreError,
    DocumentExists,
    DocumentConflict,
    DocumentStoreUnavailable,
    configure_backend,
    get_backend,
    get_document_collection,
    reset_memory_store,
)
from .base_model import (
    BaseModelDocument,
    BaseEntityData,
    DataT,
    T,
)
