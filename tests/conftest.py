"""
Shared fixtures.

Every test runs against a fresh in-process store. Route tests drive the real
FastAPI app through httpx with the store dependency overridden.
"""
from datetime import datetime, timezone
import os

os.environ.setdefault("STORE_BACKEND", "memory")

import httpx
import pytest
import pytest_asyncio

from pecc.core.security import create_access_token, hash_password
from pecc.db import MemoryDocumentStore, StoreError, get_store
from pecc.db.store import new_id

FIXED_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class FaultyStore(MemoryDocumentStore):
    """Memory store that can be told to fail batch writes on one collection"""

    def __init__(self):
        super().__init__()
        self.fail_collection = None
        self.fail_reads = False

    def _check(self, op, staged):
        if op.collection == self.fail_collection:
            raise StoreError(f"injected failure writing {op.collection}/{op.doc_id}")
        super()._check(op, staged)

    async def get(self, collection, doc_id):
        if self.fail_reads and collection not in ("users",):
            raise StoreError("injected read failure")
        return await super().get(collection, doc_id)


class StaleReadStore(MemoryDocumentStore):
    """Memory store whose code lookups keep returning the first result seen

    Reproduces two requests that both read a code as active before either
    commits.
    """

    def __init__(self):
        super().__init__()
        self._seen = {}

    async def find_one(self, collection, filters):
        key = (collection, tuple(sorted(filters.items())))
        if key not in self._seen:
            self._seen[key] = await super().find_one(collection, filters)
        return self._seen[key]


def fixed_clock():
    return FIXED_NOW


@pytest.fixture
def store():
    return FaultyStore()


async def make_user(store, display_name="Maria Souza", is_admin=False, plan=None, email=None):
    user = {
        "email": email or f"{new_id()[:8]}@example.com",
        "display_name": display_name,
        "password_hash": hash_password("secret123"),
        "is_admin": is_admin,
        "rank": "iniciante",
        "premium_plan_type": plan,
        "premium_expiry_date": None,
        "redeemed_code": None,
        "photo_url": None,
        "created_at": FIXED_NOW.isoformat()
    }
    user["id"] = await store.create("users", user)
    return user


@pytest_asyncio.fixture
async def client_user(store):
    return await make_user(store, display_name="João Silva")


@pytest_asyncio.fixture
async def other_user(store):
    return await make_user(store, display_name="Ana Lima")


@pytest_asyncio.fixture
async def admin_user(store):
    return await make_user(store, display_name="Admin", is_admin=True)


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user['id'])}"}


@pytest_asyncio.fixture
async def api(store):
    from pecc.main import app

    app.dependency_overrides[get_store] = lambda: store
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()
