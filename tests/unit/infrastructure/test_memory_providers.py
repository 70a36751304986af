"""Unit tests for the in-memory blob and document providers."""

from datetime import UTC, datetime

import pytest

from src.commons.infrastructure.blob.base import BlobNotFoundError
from src.commons.infrastructure.blob.memory_provider import InMemoryBlobStorage
from src.commons.infrastructure.documentdb.memory_provider import (
    DuplicateKeyError,
    InMemoryDocumentDB,
    matches,
    matches_predicate,
)
from src.commons.infrastructure.documentdb.predicates import (
    AnyOf,
    FilterOperator,
    Predicate,
    SortField,
    any_in,
    between,
    contains,
    eq,
    is_unsatisfiable,
)


@pytest.fixture
def db():
    return InMemoryDocumentDB()


@pytest.fixture
def blobs():
    return InMemoryBlobStorage()


async def _seed(db: InMemoryDocumentDB) -> None:
    docs = [
        {"id": "a", "title": "Cats in Space", "views": 10, "tags": ["Science"]},
        {"id": "b", "title": "Dog training", "views": 50, "tags": ["Education"]},
        {"id": "c", "title": "More CATS", "views": 10, "tags": ["Comedy", "Music"]},
        {"id": "d", "title": "Untitled", "tags": []},
    ]
    for doc in docs:
        await db.insert("videos", doc)


# =============================================================================
# Predicates
# =============================================================================


class TestPredicates:
    """Tests for predicate construction and evaluation."""

    def test_range_requires_pair(self):
        with pytest.raises(ValueError):
            Predicate("views", FilterOperator.RANGE, 5)

    def test_contains_requires_string(self):
        with pytest.raises(ValueError):
            Predicate("title", FilterOperator.CONTAINS, 5)

    def test_in_values_frozen_to_tuple(self):
        assert any_in("tags", ["Music"]).value == ("Music",)

    def test_unsatisfiable_range(self):
        assert is_unsatisfiable(between("views", 10, 5))
        assert not is_unsatisfiable(between("views", 5, 10))
        assert not is_unsatisfiable(between("views", None, 5))
        assert not is_unsatisfiable(eq("views", 5))

    def test_in_matches_any_list_element(self):
        doc = {"tags": ["Comedy", "Music"]}
        assert matches_predicate(doc, any_in("tags", ["Music", "News"]))
        assert not matches_predicate(doc, any_in("tags", ["News"]))

    def test_eq_on_list_field(self):
        assert matches_predicate({"tags": ["Music"]}, eq("tags", "Music"))

    def test_contains_case_insensitive_literal(self):
        doc = {"title": "Learn C++ (part 1)"}
        assert matches_predicate(doc, contains("title", "c++ (PART"))
        assert not matches_predicate(doc, contains("title", "c.+"))

    def test_range_inclusive_and_missing_field(self):
        assert matches_predicate({"views": 10}, between("views", 10, 10))
        assert not matches_predicate({"views": 11}, between("views", 10, 10))
        assert not matches_predicate({}, between("views", 0, 10))
        assert matches_predicate({}, between("views"))

    def test_gte_lte(self):
        assert matches_predicate({"views": 5}, Predicate("views", FilterOperator.GTE, 5))
        assert not matches_predicate(
            {"views": 5}, Predicate("views", FilterOperator.LTE, 4)
        )

    def test_any_of(self):
        search = AnyOf((contains("title", "cat"), contains("description", "cat")))
        assert matches({"title": "x", "description": "a cat"}, [search])
        assert not matches({"title": "x", "description": "dog"}, [search])
        assert not matches({"title": "cat"}, [AnyOf(())])


# =============================================================================
# Document store
# =============================================================================


class TestInMemoryDocumentDB:
    """Tests for InMemoryDocumentDB."""

    async def test_insert_and_find_by_id_are_copies(self, db):
        doc = {"id": "v1", "likes": []}
        await db.insert("videos", doc)
        doc["likes"].append("mutated")

        stored = await db.find_by_id("videos", "v1")
        assert stored == {"id": "v1", "likes": []}
        stored["likes"].append("again")
        assert (await db.find_by_id("videos", "v1"))["likes"] == []

    async def test_duplicate_insert(self, db):
        await db.insert("videos", {"id": "v1"})
        with pytest.raises(DuplicateKeyError):
            await db.insert("videos", {"id": "v1"})

    async def test_find_filter_sort_page(self, db):
        await _seed(db)

        docs = await db.find(
            "videos",
            [contains("title", "cats")],
            sort=[SortField("views", descending=True), SortField("id")],
        )
        assert [d["id"] for d in docs] == ["a", "c"]

        page = await db.find("videos", sort=[SortField("id")], skip=1, limit=2)
        assert [d["id"] for d in page] == ["b", "c"]

    async def test_missing_sort_values_first_ascending(self, db):
        await _seed(db)
        docs = await db.find("videos", sort=[SortField("views")])
        assert docs[0]["id"] == "d"

    async def test_count_ignores_pagination(self, db):
        await _seed(db)
        assert await db.count("videos", [eq("views", 10)]) == 2
        assert await db.count("videos") == 4

    async def test_projection(self, db):
        await _seed(db)
        docs = await db.find("videos", [eq("id", "a")], fields=["title"])
        assert docs == [{"id": "a", "title": "Cats in Space"}]

        docs = await db.find("videos", [eq("id", "a")], exclude_fields=["tags", "id"])
        assert docs == [{"id": "a", "title": "Cats in Space", "views": 10}]

    async def test_update_with_revision(self, db):
        await db.insert("videos", {"id": "v1", "title": "old", "revision": 0})

        assert await db.update("videos", "v1", {"title": "new"}, expected_revision=0)
        assert not await db.update(
            "videos", "v1", {"title": "stale"}, expected_revision=0
        )

        doc = await db.find_by_id("videos", "v1")
        assert doc["title"] == "new"
        assert doc["revision"] == 1

    async def test_update_missing(self, db):
        assert not await db.update("videos", "nope", {"title": "x"})

    async def test_increment(self, db):
        await db.insert("videos", {"id": "v1", "views": 2})
        doc = await db.increment("videos", "v1", "views")
        assert doc["views"] == 3
        assert await db.increment("videos", "nope", "views") is None

    async def test_add_to_set_and_pull(self, db):
        await db.insert("channels", {"id": "c1", "videos": []})

        assert await db.add_to_set("channels", "c1", "videos", "v1")
        assert await db.add_to_set("channels", "c1", "videos", "v1")
        assert (await db.find_by_id("channels", "c1"))["videos"] == ["v1"]

        assert await db.pull("channels", "c1", "videos", "v1")
        assert (await db.find_by_id("channels", "c1"))["videos"] == []
        assert not await db.add_to_set("channels", "missing", "videos", "v1")

    async def test_datetime_range(self, db):
        created = datetime(2024, 5, 1, tzinfo=UTC)
        await db.insert("videos", {"id": "v1", "created_at": created})
        low = datetime(2024, 1, 1, tzinfo=UTC)
        high = datetime(2024, 12, 31, tzinfo=UTC)
        assert await db.count("videos", [between("created_at", low, high)]) == 1

    async def test_delete(self, db):
        await db.insert("videos", {"id": "v1"})
        assert await db.delete("videos", "v1")
        assert not await db.delete("videos", "v1")

    async def test_health(self, db):
        assert (await db.health_check()).healthy


# =============================================================================
# Blob store
# =============================================================================


class TestInMemoryBlobStorage:
    """Tests for InMemoryBlobStorage."""

    async def test_upload_download(self, blobs):
        meta = await blobs.upload("videos", "c1/a.mp4", b"data", "video/mp4")

        assert meta.size_bytes == 4
        assert meta.content_type == "video/mp4"
        assert await blobs.download("videos", "c1/a.mp4") == b"data"
        assert await blobs.exists("videos", "c1/a.mp4")
        assert blobs.keys("videos") == ["c1/a.mp4"]

    async def test_upload_file(self, blobs, tmp_path):
        path = tmp_path / "thumb.jpg"
        path.write_bytes(b"jpeg")
        await blobs.upload_file("thumbs", "c1/a.jpg", path, "image/jpeg")
        assert await blobs.download("thumbs", "c1/a.jpg") == b"jpeg"

    async def test_download_missing(self, blobs):
        with pytest.raises(BlobNotFoundError):
            await blobs.download("videos", "nope")

    async def test_delete(self, blobs):
        await blobs.upload("videos", "k", b"x")
        assert await blobs.delete("videos", "k")
        assert not await blobs.delete("videos", "k")
        assert blobs.total_blobs() == 0

    async def test_buckets(self, blobs):
        assert await blobs.create_bucket("videos")
        assert not await blobs.create_bucket("videos")
        assert await blobs.bucket_exists("videos")
        assert not await blobs.bucket_exists("thumbs")
