"""Document store contract, run against both implementations."""

import pytest
import pytest_asyncio

from parcelspine.core.errors import DocumentExistsError, DocumentNotFoundError, ValidationError
from parcelspine.store import (
    InMemoryDocumentStore,
    SQLiteDocumentStore,
    WriteOp,
    normalize_path,
    package_path,
    parent_collection,
    user_packages_collection,
)


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def doc_store(request, tmp_path):
    if request.param == "memory":
        store = InMemoryDocumentStore()
    else:
        store = SQLiteDocumentStore(tmp_path / "docs.db")
    yield store
    await store.close()


class TestPaths:
    def test_normalize(self):
        assert normalize_path("/users/u1/") == "users/u1"

    @pytest.mark.parametrize("bad", ["", "/", "users//u1"])
    def test_normalize_rejects(self, bad):
        with pytest.raises(ValidationError):
            normalize_path(bad)

    def test_package_layout(self):
        assert package_path("tl", "period_2", "u1") == "packages/tl/periods/period_2/user_packages/u1"
        assert parent_collection(package_path("tl", "period_2", "u1")) == user_packages_collection(
            "tl", "period_2"
        )


class TestDocumentStore:
    @pytest.mark.asyncio
    async def test_get_missing(self, doc_store):
        assert await doc_store.get("users/nobody") is None

    @pytest.mark.asyncio
    async def test_create_and_get(self, doc_store):
        await doc_store.create("users/u1", {"id": "u1", "role": "user"})
        assert await doc_store.get("users/u1") == {"id": "u1", "role": "user"}

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, doc_store):
        await doc_store.create("users/u1", {"id": "u1", "tags": ["a"]})
        doc = await doc_store.get("users/u1")
        doc["tags"].append("b")
        assert (await doc_store.get("users/u1"))["tags"] == ["a"]

    @pytest.mark.asyncio
    async def test_conditional_create(self, doc_store):
        await doc_store.create("users/u1", {"v": 1}, overwrite=False)
        with pytest.raises(DocumentExistsError):
            await doc_store.create("users/u1", {"v": 2}, overwrite=False)
        assert await doc_store.get("users/u1") == {"v": 1}
        await doc_store.create("users/u1", {"v": 3})
        assert await doc_store.get("users/u1") == {"v": 3}

    @pytest.mark.asyncio
    async def test_update_merges(self, doc_store):
        await doc_store.create("users/u1", {"id": "u1", "priority": "normal"})
        await doc_store.update("users/u1", {"priority": "high"})
        assert await doc_store.get("users/u1") == {"id": "u1", "priority": "high"}

    @pytest.mark.asyncio
    async def test_update_missing(self, doc_store):
        with pytest.raises(DocumentNotFoundError):
            await doc_store.update("users/ghost", {"priority": "high"})

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, doc_store):
        await doc_store.create("users/u1", {"id": "u1"})
        await doc_store.delete("users/u1")
        await doc_store.delete("users/u1")
        assert await doc_store.get("users/u1") is None

    @pytest.mark.asyncio
    async def test_query_direct_children_with_filters(self, doc_store):
        await doc_store.create("users/u1", {"id": "u1", "role": "user"})
        await doc_store.create("users/u2", {"id": "u2", "role": "admin"})
        await doc_store.create("users/u1/settings/x", {"id": "nested", "role": "user"})

        assert [d["id"] for d in await doc_store.query("users")] == ["u1", "u2"]
        assert [d["id"] for d in await doc_store.query("users", {"role": "user"})] == ["u1"]
        assert await doc_store.query("nothing") == []

    @pytest.mark.asyncio
    async def test_batch_commit(self, doc_store):
        await doc_store.create("users/u1", {"id": "u1", "priority": "high"})
        await doc_store.create("users/u2", {"id": "u2"})
        await doc_store.batch_commit(
            [
                WriteOp.set("users/u3", {"id": "u3"}),
                WriteOp.update("users/u1", {"priority": "normal"}),
                WriteOp.delete("users/u2"),
            ]
        )
        assert await doc_store.get("users/u1") == {"id": "u1", "priority": "normal"}
        assert await doc_store.get("users/u2") is None
        assert await doc_store.get("users/u3") == {"id": "u3"}

    @pytest.mark.asyncio
    async def test_batch_commit_is_all_or_nothing(self, doc_store):
        await doc_store.create("users/u1", {"id": "u1"})
        with pytest.raises(DocumentNotFoundError):
            await doc_store.batch_commit(
                [
                    WriteOp.delete("users/u1"),
                    WriteOp.set("users/u2", {"id": "u2"}),
                    WriteOp.update("users/ghost", {"x": 1}),
                ]
            )
        assert await doc_store.get("users/u1") == {"id": "u1"}
        assert await doc_store.get("users/u2") is None


class TestInMemoryExtras:
    @pytest.mark.asyncio
    async def test_seeded_documents_and_read_counter(self):
        store = InMemoryDocumentStore({"/users/u1": {"id": "u1"}})
        assert store.paths() == ["users/u1"]
        assert len(store) == 1
        await store.get("users/u1")
        await store.get("users/u2")
        assert store.reads == 2


@pytest.mark.integration
class TestSQLitePersistence:
    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path):
        db = tmp_path / "nested" / "parcel.db"
        store = SQLiteDocumentStore(db)
        await store.create("users/u1", {"id": "u1"})
        await store.close()

        reopened = SQLiteDocumentStore(db)
        try:
            assert await reopened.get("users/u1") == {"id": "u1"}
        finally:
            await reopened.close()
