# atlas_core/core/repository.py

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from loguru import logger

from atlas_core.core.database import with_db_retry

Document = Dict[str, Any]


def utcnow() -> datetime:
    """Naive UTC timestamp, the form the Mongo driver hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class BaseRepository:
    """Base class for collection repositories. Rows are plain dicts exposed with `id`."""

    collection_name: str

    def __init__(self, db: Any):
        if not getattr(self, 'collection_name', None):
            raise AttributeError("Repository subclass must define a 'collection_name'")
        self.db = db
        self.collection = db[self.collection_name]
        logger.debug(f"Repository initialized for collection: '{self.collection_name}'")

    @staticmethod
    def to_api(document: Optional[Document]) -> Optional[Document]:
        """Maps `_id` to `id` for responses."""
        if document is None:
            return None
        out = dict(document)
        if "_id" in out:
            out["id"] = str(out.pop("_id"))
        return out

    @staticmethod
    def _prepare_data_for_db(data: Dict) -> Dict:
        prepared = {}
        for key, value in data.items():
            if isinstance(value, Decimal):
                prepared[key] = float(value)
            else:
                prepared[key] = value
        return prepared

    def _log_db_error(self, e: Exception, operation: str, doc_id: Any = None):
        context = f"op='{operation}' coll='{self.collection_name}'"
        if doc_id is not None:
            context += f" id='{doc_id}'"
        if isinstance(e, DuplicateKeyError):
            logger.warning(f"Duplicate key during {context}: {e.details.get('keyValue') if e.details else e}")
        else:
            logger.error(f"DB error during {context}: {e}")

    async def get_by_id(self, id: str) -> Optional[Document]:
        if not id:
            return None
        try:
            document = await with_db_retry(lambda: self.collection.find_one({"_id": id}), op_name=f"{self.collection_name}.get_by_id")
        except Exception as e:
            self._log_db_error(e, "get_by_id", id)
            raise
        return self.to_api(document)

    async def get_by(self, query: Dict[str, Any], sort: Optional[List[Tuple[str, int]]] = None) -> Optional[Document]:
        try:
            document = await with_db_retry(lambda: self.collection.find_one(query, sort=sort), op_name=f"{self.collection_name}.get_by")
        except Exception as e:
            self._log_db_error(e, "get_by")
            raise
        return self.to_api(document)

    async def list_by(
        self,
        query: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 0,
        sort: Optional[List[Tuple[str, int]]] = None,
        projection: Optional[Dict[str, Any]] = None,
    ) -> List[Document]:
        """Lists rows matching `query`. `limit=0` means no limit."""
        async def _run():
            cursor = self.collection.find(
                query or {}, projection, sort=sort or None, skip=max(0, skip), limit=max(0, limit)
            )
            return await cursor.to_list(length=None)

        try:
            documents = await with_db_retry(_run, op_name=f"{self.collection_name}.list_by")
        except Exception as e:
            self._log_db_error(e, "list_by")
            raise
        return [self.to_api(doc) for doc in documents]

    async def count(self, query: Optional[Dict[str, Any]] = None) -> int:
        try:
            return await with_db_retry(lambda: self.collection.count_documents(query or {}), op_name=f"{self.collection_name}.count")
        except Exception as e:
            self._log_db_error(e, "count")
            raise

    async def create(self, data_in: BaseModel | Dict) -> Document:
        """Inserts a row. Not retried: a retried insert could duplicate it."""
        if isinstance(data_in, BaseModel):
            data = data_in.model_dump()
        else:
            data = dict(data_in)
        prepared = self._prepare_data_for_db(data)
        prepared.pop("id", None)
        prepared.setdefault("_id", new_id())
        prepared.setdefault("created_at", utcnow())

        try:
            await self.collection.insert_one(prepared)
        except Exception as e:
            self._log_db_error(e, "create")
            raise
        return self.to_api(prepared)

    async def update(self, id: str, data_in: BaseModel | Dict) -> Optional[Document]:
        """`$set` update returning the updated row, or None when the row does not exist."""
        if isinstance(data_in, BaseModel):
            data = data_in.model_dump(exclude_unset=True)
        else:
            data = dict(data_in)
        prepared = self._prepare_data_for_db(data)
        for field in ("_id", "id", "created_at"):
            prepared.pop(field, None)
        if not prepared:
            return await self.get_by_id(id)
        prepared["updated_at"] = utcnow()

        try:
            document = await with_db_retry(
                lambda: self.collection.find_one_and_update(
                    {"_id": id}, {"$set": prepared}, return_document=ReturnDocument.AFTER
                ),
                op_name=f"{self.collection_name}.update",
            )
        except Exception as e:
            self._log_db_error(e, "update", id)
            raise
        if document is None:
            logger.warning(f"Document not found for update: ID {id}, Collection: {self.collection_name}")
        return self.to_api(document)

    async def delete(self, id: str) -> bool:
        try:
            result = await with_db_retry(lambda: self.collection.delete_one({"_id": id}), op_name=f"{self.collection_name}.delete")
        except Exception as e:
            self._log_db_error(e, "delete", id)
            raise
        deleted = result.deleted_count > 0
        if deleted:
            logger.info(f"Document deleted: ID {id}, Collection: {self.collection_name}")
        else:
            logger.warning(f"Document not found for deletion: ID {id}, Collection: {self.collection_name}")
        return deleted

    async def delete_many(self, query: Dict[str, Any]) -> int:
        try:
            result = await with_db_retry(lambda: self.collection.delete_many(query), op_name=f"{self.collection_name}.delete_many")
        except Exception as e:
            self._log_db_error(e, "delete_many")
            raise
        return result.deleted_count
