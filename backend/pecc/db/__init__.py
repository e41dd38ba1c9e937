# Document store backends
from typing import Optional

from pecc.core.config import STORE_BACKEND
from .store import (
    SERVER_TIMESTAMP,
    DocumentNotFound,
    DocumentStore,
    PreconditionFailed,
    StoreError,
    WriteBatch,
)
from .memory import MemoryDocumentStore

_store: Optional[DocumentStore] = None


def get_store() -> DocumentStore:
    """FastAPI dependency returning the process-wide store"""
    global _store
    if _store is None:
        if STORE_BACKEND == "memory":
            _store = MemoryDocumentStore()
        else:
            from .mongo import MongoDocumentStore
            _store = MongoDocumentStore()
    return _store


__all__ = [
    "SERVER_TIMESTAMP",
    "DocumentNotFound",
    "DocumentStore",
    "MemoryDocumentStore",
    "PreconditionFailed",
    "StoreError",
    "WriteBatch",
    "get_store",
]
