from functools import wraps
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from pecc.core.config import MONGO_URL, DB_NAME
from pecc.db.store import (
    BatchOperation,
    DocumentNotFound,
    DocumentStore,
    OrderBy,
    PreconditionFailed,
    StoreError,
    new_id,
    resolve_timestamps,
)

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]


def _wrap_errors(func):
    """Surface driver failures as StoreError"""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PyMongoError as e:
            raise StoreError(str(e)) from e
    return wrapper


class MongoDocumentStore(DocumentStore):
    """
    MongoDB backend.

    Documents are addressed by their ``id`` field; Mongo's own ``_id`` is
    always projected out. Batches run inside a multi-document transaction,
    which requires a replica set (Atlas or a single-node ``rs0``).
    """

    def __init__(self, database=None, mongo_client=None):
        self.db = database if database is not None else db
        self.client = mongo_client if mongo_client is not None else self.db.client

    @_wrap_errors
    async def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        doc = await self.db[collection].find_one({"id": doc_id}, {"_id": 0})
        if not doc:
            raise DocumentNotFound(collection, doc_id)
        return doc

    @_wrap_errors
    async def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        cursor = self.db[collection].find(filters or {}, {"_id": 0})
        if order_by:
            cursor = cursor.sort(order_by)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(limit)

    @_wrap_errors
    async def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        return await self.db[collection].count_documents(filters or {})

    @_wrap_errors
    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        doc = resolve_timestamps(data)
        doc["id"] = doc.get("id") or new_id()
        # insert_one adds _id to the dict it is given
        await self.db[collection].insert_one(dict(doc))
        return doc["id"]

    @_wrap_errors
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        result = await self.db[collection].update_one(
            {"id": doc_id},
            {"$set": resolve_timestamps(fields)}
        )
        if result.matched_count == 0:
            raise DocumentNotFound(collection, doc_id)

    @_wrap_errors
    async def delete(self, collection: str, doc_id: str) -> None:
        await self.db[collection].delete_one({"id": doc_id})

    @_wrap_errors
    async def _commit(self, operations: List[BatchOperation]) -> None:
        async with await self.client.start_session() as session:
            # Raising inside the transaction block aborts it
            async with session.start_transaction():
                for op in operations:
                    coll = self.db[op.collection]
                    if op.kind == "set":
                        await coll.replace_one({"id": op.doc_id}, dict(op.data), upsert=True, session=session)
                    elif op.kind == "update":
                        result = await coll.update_one(
                            {"id": op.doc_id, **(op.expect or {})},
                            {"$set": op.data},
                            session=session
                        )
                        if result.matched_count == 0:
                            exists = await coll.count_documents({"id": op.doc_id}, session=session)
                            if exists:
                                raise PreconditionFailed(op.collection, op.doc_id, op.expect or {})
                            raise DocumentNotFound(op.collection, op.doc_id)
                    elif op.kind == "delete":
                        await coll.delete_one({"id": op.doc_id}, session=session)
                    else:
                        raise StoreError(f"Unknown batch operation {op.kind}")
