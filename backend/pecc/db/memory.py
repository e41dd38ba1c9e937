"""
In-process document store.

Used for local development (STORE_BACKEND=memory) and by the test suite. All
methods run without awaiting anything in between, so a batch commit is never
interleaved with another coroutine.
"""

import copy
from typing import Any, Dict, List, Optional

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

_MISSING = object()


def get_path(doc: Dict[str, Any], path: str, default: Any = None) -> Any:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def set_path(doc: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def matches(doc: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    for key, cond in (filters or {}).items():
        value = get_path(doc, key, _MISSING)
        if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
            for op, arg in cond.items():
                if op == "$in":
                    if value is _MISSING or value not in arg:
                        return False
                elif op == "$ne":
                    if value is not _MISSING and value == arg:
                        return False
                else:
                    raise StoreError(f"Unsupported filter operator {op}")
        else:
            if value is _MISSING:
                value = None
            if value != cond:
                return False
    return True


def _sort_key(value: Any):
    # None sorts after every real value and is never compared with one
    return (value is None, 0 if value is None else value)


class MemoryDocumentStore(DocumentStore):
    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        doc = self._collection(collection).get(doc_id)
        if doc is None:
            raise DocumentNotFound(collection, doc_id)
        return copy.deepcopy(doc)

    async def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        docs = [d for d in self._collection(collection).values() if matches(d, filters)]
        # Python sorts are stable, so apply the keys from last to first
        for field_path, direction in reversed(order_by or []):
            docs.sort(key=lambda d: _sort_key(get_path(d, field_path)), reverse=direction < 0)
        if limit:
            docs = docs[:limit]
        return [copy.deepcopy(d) for d in docs]

    async def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        return sum(1 for d in self._collection(collection).values() if matches(d, filters))

    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        doc = resolve_timestamps(copy.deepcopy(data))
        doc_id = doc.get("id") or new_id()
        doc["id"] = doc_id
        self._collection(collection)[doc_id] = doc
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        doc = self._collection(collection).get(doc_id)
        if doc is None:
            raise DocumentNotFound(collection, doc_id)
        for path, value in resolve_timestamps(fields).items():
            set_path(doc, path, copy.deepcopy(value))

    async def delete(self, collection: str, doc_id: str) -> None:
        self._collection(collection).pop(doc_id, None)

    def _check(self, op: BatchOperation, staged: Dict[tuple, Optional[Dict[str, Any]]]) -> None:
        key = (op.collection, op.doc_id)
        if op.kind == "set":
            staged[key] = op.data
            return
        if op.kind == "delete":
            staged[key] = None
            return
        doc = staged[key] if key in staged else self._collection(op.collection).get(op.doc_id)
        if doc is None:
            raise DocumentNotFound(op.collection, op.doc_id)
        if op.expect and not matches(doc, op.expect):
            raise PreconditionFailed(op.collection, op.doc_id, op.expect)

    def _apply(self, op: BatchOperation) -> None:
        coll = self._collection(op.collection)
        if op.kind == "set":
            coll[op.doc_id] = copy.deepcopy(op.data)
        elif op.kind == "update":
            for path, value in op.data.items():
                set_path(coll[op.doc_id], path, copy.deepcopy(value))
        elif op.kind == "delete":
            coll.pop(op.doc_id, None)
        else:
            raise StoreError(f"Unknown batch operation {op.kind}")

    async def _commit(self, operations: List[BatchOperation]) -> None:
        # Validate everything first; nothing is applied unless all checks pass
        staged: Dict[tuple, Optional[Dict[str, Any]]] = {}
        for op in operations:
            self._check(op, staged)
        for op in operations:
            self._apply(op)
