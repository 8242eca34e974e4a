import uuid
from datetime import datetime, timezone
from typing import Any, ClassVar, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel

from .documents import DocumentCollection, get_document_collection


class BaseEntityData(BaseModel):
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by_user_id: Optional[str] = None


DataT = TypeVar("DataT", bound=BaseEntityData)
T = TypeVar("T", bound="BaseModelDocument")


class BaseModelDocument(BaseModel, Generic[DataT]):
    id: str
    data: DataT
    cas: Optional[int] = None

    _collection_name: ClassVar[str] = ""

    @classmethod
    def get_collection(cls) -> DocumentCollection:
        if not cls._collection_name:
            raise ValueError(f"_collection_name not set for {cls.__name__}")
        return get_document_collection(cls._collection_name)

    @classmethod
    async def get(cls: type[T], id: str) -> Optional[T]:
        found = await cls.get_collection().get(id)
        if found is None:
            return None
        doc, cas = found
        return cls(id=id, data=doc, cas=cas)

    @classmethod
    async def create(cls: type[T], data: DataT, key: Optional[str] = None, user_id: Optional[str] = None) -> T:
        """Insert a new document. Raises ``DocumentExists`` if *key* is taken."""
        if key is None:
            key = str(uuid.uuid4())

        now = datetime.now(timezone.utc)
        if data.created_at is None:
            data.created_at = now
        data.updated_at = now
        if user_id:
            data.created_by_user_id = user_id

        cas = await cls.get_collection().insert(key, data.model_dump(mode="json"))
        return cls(id=key, data=data, cas=cas)

    @classmethod
    async def update(cls: type[T], item: T) -> T:
        """Replace the stored document.

        When the item carries a CAS value the write is guarded by it and a
        concurrent modification raises ``DocumentConflict``.
        """
        item.data.updated_at = datetime.now(timezone.utc)
        item.cas = await cls.get_collection().replace(
            item.id, item.data.model_dump(mode="json"), cas=item.cas
        )
        return item

    @classmethod
    async def delete(cls: type[T], id: str) -> bool:
        return await cls.get_collection().remove(id)

    @classmethod
    async def find(
        cls: type[T],
        order_by: Optional[List[Tuple[str, bool]]] = None,
        limit: Optional[int] = None,
        **filters: Any,
    ) -> List[T]:
        rows = await cls.get_collection().find(filters, order_by=order_by, limit=limit)
        return [cls(id=key, data=doc, cas=cas) for key, doc, cas in rows]
