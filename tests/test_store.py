"""In-process document store: queries and all-or-nothing batches"""
import pytest

from pecc.db import DocumentNotFound, MemoryDocumentStore, PreconditionFailed, SERVER_TIMESTAMP, StoreError


@pytest.fixture
def memory():
    return MemoryDocumentStore()


class TestDocuments:

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_resolves_timestamp(self, memory):
        doc_id = await memory.create("things", {"name": "a", "created_at": SERVER_TIMESTAMP})
        doc = await memory.get("things", doc_id)
        assert doc["id"] == doc_id
        assert isinstance(doc["created_at"], str)

    @pytest.mark.asyncio
    async def test_get_missing_raises(self, memory):
        with pytest.raises(DocumentNotFound) as exc:
            await memory.get("things", "nope")
        assert exc.value.collection == "things"

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, memory):
        doc_id = await memory.create("things", {"tags": ["a"]})
        doc = await memory.get("things", doc_id)
        doc["tags"].append("b")
        assert (await memory.get("things", doc_id))["tags"] == ["a"]

    @pytest.mark.asyncio
    async def test_update_dotted_path(self, memory):
        doc_id = await memory.create("things", {"meta": {"a": 1}})
        await memory.update("things", doc_id, {"meta.b": 2})
        assert (await memory.get("things", doc_id))["meta"] == {"a": 1, "b": 2}

    @pytest.mark.asyncio
    async def test_query_filters_orders_and_limits(self, memory):
        for n, status in [(3, "open"), (1, "open"), (2, "closed"), (None, "open")]:
            await memory.create("things", {"n": n, "status": status})

        docs = await memory.query("things", {"status": "open"}, order_by=[("n", 1)])
        assert [d["n"] for d in docs] == [1, 3, None]

        docs = await memory.query("things", {"status": {"$in": ["open", "closed"]}}, order_by=[("n", -1)], limit=2)
        assert len(docs) == 2
        assert await memory.count("things", {"status": {"$ne": "open"}}) == 1

    @pytest.mark.asyncio
    async def test_unsupported_operator_is_rejected(self, memory):
        await memory.create("things", {"name": "a"})
        with pytest.raises(StoreError):
            await memory.query("things", {"name": {"$regex": "a"}})


class TestBatches:

    @pytest.mark.asyncio
    async def test_commit_applies_every_operation(self, memory):
        a = await memory.create("things", {"v": 1})
        b = await memory.create("things", {"v": 1})

        batch = memory.batch()
        batch.update("things", a, {"v": 2})
        batch.delete("things", b)
        batch.set("things", "c", {"v": 3})
        await batch.commit()

        assert (await memory.get("things", a))["v"] == 2
        assert (await memory.get("things", "c")) == {"v": 3, "id": "c"}
        with pytest.raises(DocumentNotFound):
            await memory.get("things", b)

    @pytest.mark.asyncio
    async def test_failed_precondition_applies_nothing(self, memory):
        a = await memory.create("things", {"status": "active"})
        b = await memory.create("things", {"status": "redeemed"})

        batch = memory.batch()
        batch.update("things", a, {"status": "redeemed"})
        batch.update("things", b, {"status": "redeemed"}, expect={"status": "active"})
        with pytest.raises(PreconditionFailed) as exc:
            await batch.commit()

        assert exc.value.doc_id == b
        assert (await memory.get("things", a))["status"] == "active"

    @pytest.mark.asyncio
    async def test_update_of_missing_document_applies_nothing(self, memory):
        a = await memory.create("things", {"v": 1})
        batch = memory.batch()
        batch.update("things", a, {"v": 2})
        batch.update("things", "ghost", {"v": 2})
        with pytest.raises(DocumentNotFound):
            await batch.commit()
        assert (await memory.get("things", a))["v"] == 1

    @pytest.mark.asyncio
    async def test_update_after_set_in_same_batch(self, memory):
        batch = memory.batch()
        batch.set("things", "t1", {"v": 1})
        batch.update("things", "t1", {"v": 2})
        await batch.commit()
        assert (await memory.get("things", "t1"))["v"] == 2

    @pytest.mark.asyncio
    async def test_batch_can_not_be_committed_twice(self, memory):
        batch = memory.batch()
        batch.set("things", "t1", {"v": 1})
        await batch.commit()
        with pytest.raises(StoreError):
            await batch.commit()
