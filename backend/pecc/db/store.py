"""
Document store contract shared by every engine and route.

A store maps (collection, id) to a JSON-like dict. Documents always carry their
own ``id`` field. Multi-document writes that must be observed together go
through ``batch()``, which commits all-or-nothing.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import uuid


class _ServerTimestamp:
    """Sentinel replaced by the store with the current UTC time on write"""

    def __repr__(self):
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class StoreError(Exception):
    """Base class for store and transport failures"""


class DocumentNotFound(StoreError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} does not exist")
        self.collection = collection
        self.doc_id = doc_id


class PreconditionFailed(StoreError):
    def __init__(self, collection: str, doc_id: str, expect: Dict[str, Any]):
        super().__init__(f"{collection}/{doc_id} no longer matches {expect}")
        self.collection = collection
        self.doc_id = doc_id
        self.expect = expect


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def resolve_timestamps(data: Any, now: Optional[str] = None) -> Any:
    """Return a copy of ``data`` with every SERVER_TIMESTAMP replaced"""
    now = now or utc_now_iso()
    if data is SERVER_TIMESTAMP:
        return now
    if isinstance(data, dict):
        return {k: resolve_timestamps(v, now) for k, v in data.items()}
    if isinstance(data, list):
        return [resolve_timestamps(v, now) for v in data]
    return data


@dataclass
class BatchOperation:
    kind: str  # 'set', 'update' or 'delete'
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    expect: Optional[Dict[str, Any]] = None


class WriteBatch:
    """Collects writes and hands them to the store as one atomic unit"""

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self.operations: List[BatchOperation] = []
        self.committed = False

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self.operations.append(BatchOperation("set", collection, doc_id, {**data, "id": doc_id}))
        return self

    def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        expect: Optional[Dict[str, Any]] = None
    ) -> "WriteBatch":
        """Queue a field-path update; ``expect`` must still hold at commit time"""
        self.operations.append(BatchOperation("update", collection, doc_id, dict(fields), expect))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self.operations.append(BatchOperation("delete", collection, doc_id))
        return self

    async def commit(self) -> None:
        if self.committed:
            raise StoreError("Batch already committed")
        now = utc_now_iso()
        operations = [
            BatchOperation(op.kind, op.collection, op.doc_id, resolve_timestamps(op.data, now), op.expect)
            for op in self.operations
        ]
        await self._store._commit(operations)
        self.committed = True


OrderBy = List[Tuple[str, int]]


class DocumentStore:
    """Abstract async document store"""

    async def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    async def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        raise NotImplementedError

    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        raise NotImplementedError

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    async def _commit(self, operations: List[BatchOperation]) -> None:
        raise NotImplementedError

    async def find_one(self, collection: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        docs = await self.query(collection, filters, limit=1)
        return docs[0] if docs else None

    def batch(self) -> WriteBatch:
        return WriteBatch(self)
