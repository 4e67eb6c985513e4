"""
Unit tests for backchannel/storage/: FeedbackStore behaviour on both the
JSON-file engine and the in-memory engine.

Coverage plan
─────────────
lifecycle   → open/close, seeding, unsupported engine, delete_database
package     → one-package invariant, update keeps id, integrity violation
comments    → CRUD by timestamp, duplicate rejection, ordering, page filter
cache       → package writes clear the resolution cache
concurrency → parallel writers through separate Store objects of one catalog
"""

import asyncio
import json

import pytest

from backchannel.domain.errors import PackageIntegrityError, PersistenceUnsupportedError
from backchannel.domain.models import ActiveFeedbackPackage, Comment, Package
from backchannel.storage.json_store import JsonFeedbackStore
from backchannel.storage.memory_store import MemoryFeedbackStore


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture(params=["json", "memory"])
def make_store(request, tmp_path, cache):
    """Factory for stores of either engine sharing one backing medium per test."""
    databases = {}

    def _make(title="site1", seed=None):
        if request.param == "json":
            return JsonFeedbackStore(title, seed, data_dir=tmp_path, cache=cache)
        return MemoryFeedbackStore(title, seed, databases=databases, cache=cache)

    return _make


def _package(root="https://example.com/app1", name="Review"):
    return Package(name=name, version="1.0", author="qa", root_url=root)


def _comment(timestamp=1000, page="https://example.com/app1/page", feedback="Fix typo"):
    return Comment(
        timestamp=timestamp,
        xpath="/html/body/h1",
        element_text="Welcom",
        feedback=feedback,
        page_url=page,
        document_title="Home",
    )


# ─────────────────────────────────────────────────────────────────────────────
# 1. Lifecycle
# ─────────────────────────────────────────────────────────────────────────────

class TestLifecycle:

    def test_name_uses_namespace_and_sanitized_title(self, make_store):
        store = make_store("Site One")
        assert store.store_id == "site-one"
        assert store.name == "bc-storage-site-one"

    def test_generated_id_when_no_title(self, make_store):
        store = make_store(None)
        assert len(store.store_id) == 6

    async def test_open_creates_empty_store(self, make_store):
        store = make_store()
        assert await store.open()
        assert store.is_open
        assert await store.get_package() is None
        assert await store.get_all_comments() == []

    async def test_json_store_creates_file(self, tmp_path):
        store = JsonFeedbackStore("site1", data_dir=tmp_path)
        await store.open()
        assert (tmp_path / "bc-storage-site1.json").is_file()

    async def test_open_writes_seed_package(self, make_store):
        store = make_store(seed=_package())
        await store.open()
        package = await store.get_package()
        assert package is not None
        assert package.root_url == "https://example.com/app1"
        assert package.id.startswith("pkg-")

    async def test_seed_keeps_given_id(self, make_store):
        seed = _package()
        seed.id = "pkg-fixed"
        store = make_store(seed=seed)
        await store.open()
        assert (await store.get_package()).id == "pkg-fixed"

    async def test_seed_ignored_when_package_exists(self, make_store):
        first = make_store(seed=_package(name="First"))
        await first.open()
        first.close()

        second = make_store(seed=_package(name="Second"))
        await second.open()
        package = await second.get_package()
        assert package.name == "First"

    async def test_data_survives_reopen(self, make_store):
        store = make_store(seed=_package())
        await store.open()
        await store.add_comment(_comment())
        store.close()

        reopened = make_store()
        await reopened.open()
        assert await reopened.get_comment(1000) == _comment()

    async def test_operations_after_close_fail_softly(self, make_store):
        store = make_store()
        await store.open()
        store.close()
        assert not store.is_open
        assert await store.get_package() is None
        assert await store.add_comment(_comment()) is None
        assert await store.delete_comment(1000) is False
        assert await store.get_all_comments() is None

    async def test_unsupported_engine_raises_on_open(self):
        store = MemoryFeedbackStore("site1", supported=False)
        with pytest.raises(PersistenceUnsupportedError):
            await store.open()

    async def test_delete_database(self, make_store):
        store = make_store(seed=_package())
        await store.open()
        assert await store.delete_database() is True
        assert not store.is_open
        assert await store.delete_database() is False

    async def test_json_store_rejects_unknown_schema_version(self, tmp_path):
        path = tmp_path / "bc-storage-old.json"
        path.write_text(json.dumps({"version": 7, "packages": {}, "comments": {}}))
        store = JsonFeedbackStore("old", data_dir=tmp_path)
        assert await store.open() is False

    async def test_json_store_corrupt_file_fails_open(self, tmp_path):
        (tmp_path / "bc-storage-bad.json").write_text("{not json")
        store = JsonFeedbackStore("bad", data_dir=tmp_path)
        assert await store.open() is False


# ─────────────────────────────────────────────────────────────────────────────
# 2. Package
# ─────────────────────────────────────────────────────────────────────────────

class TestPackage:

    async def test_add_package_to_empty_store(self, make_store):
        store = make_store()
        await store.open()
        added = await store._add_package(_package())
        assert added is not None
        assert added.id.startswith("pkg-")
        assert await store.get_package() == added

    async def test_second_add_is_rejected(self, make_store):
        store = make_store(seed=_package(name="Original"))
        await store.open()
        assert await store._add_package(_package(name="Intruder")) is None
        package = await store.get_package()
        assert package.name == "Original"

    async def test_update_keeps_existing_id(self, make_store):
        store = make_store(seed=_package())
        await store.open()
        original = await store.get_package()

        replacement = _package(root="https://example.com/app2", name="Renamed")
        replacement.id = "pkg-other"
        updated = await store.update_package(replacement)

        assert updated.id == original.id
        package = await store.get_package()
        assert package.name == "Renamed"
        assert package.root_url == "https://example.com/app2"

    async def test_update_on_empty_store_adds(self, make_store):
        store = make_store()
        await store.open()
        updated = await store.update_package(_package())
        assert updated is not None
        assert updated.id
        assert (await store.get_package()).id == updated.id

    async def test_delete_package(self, make_store):
        store = make_store(seed=_package())
        await store.open()
        package = await store.get_package()
        assert await store.delete_package(package.id) is True
        assert await store.get_package() is None
        assert await store.delete_package(package.id) is False

    async def test_extra_fields_round_trip(self, make_store):
        seed = Package.model_validate({"name": "X", "rootURL": "https://x.com", "team": "web"})
        store = make_store(seed=seed)
        await store.open()
        package = await store.get_package()
        assert package.to_record()["team"] == "web"

    async def test_integrity_violation_in_memory(self, memory_catalog):
        memory_catalog.load_raw(
            "twice",
            packages=[Package(id="a", root_url="https://a.com"), Package(id="b", root_url="https://b.com")],
        )
        store = memory_catalog.open_store("twice")
        await store.open()
        with pytest.raises(PackageIntegrityError) as excinfo:
            await store.get_package()
        assert excinfo.value.count == 2

    async def test_integrity_violation_in_json(self, tmp_path):
        document = {
            "name": "bc-storage-twice",
            "version": 1,
            "packages": {"a": {"id": "a"}, "b": {"id": "b"}},
            "comments": {},
        }
        (tmp_path / "bc-storage-twice.json").write_text(json.dumps(document))
        store = JsonFeedbackStore("twice", data_dir=tmp_path)
        await store.open()
        with pytest.raises(PackageIntegrityError):
            await store.get_package()
        with pytest.raises(PackageIntegrityError):
            await store.update_package(_package())


# ─────────────────────────────────────────────────────────────────────────────
# 3. Comments
# ─────────────────────────────────────────────────────────────────────────────

class TestComments:

    async def test_add_then_get_returns_equal_record(self, make_store):
        store = make_store()
        await store.open()
        comment = _comment()
        assert await store.add_comment(comment) == comment
        assert await store.get_comment(comment.timestamp) == comment

    async def test_duplicate_timestamp_rejected(self, make_store):
        store = make_store()
        await store.open()
        await store.add_comment(_comment(feedback="first"))
        assert await store.add_comment(_comment(feedback="second")) is None
        assert (await store.get_comment(1000)).feedback == "first"

    async def test_get_missing_returns_none(self, make_store):
        store = make_store()
        await store.open()
        assert await store.get_comment(42) is None

    async def test_delete_then_get_returns_none(self, make_store):
        store = make_store()
        await store.open()
        await store.add_comment(_comment())
        assert await store.delete_comment(1000) is True
        assert await store.get_comment(1000) is None

    async def test_delete_missing_returns_false(self, make_store):
        store = make_store()
        await store.open()
        assert await store.delete_comment(1000) is False

    async def test_update_replaces_record(self, make_store):
        store = make_store()
        await store.open()
        await store.add_comment(_comment())
        await store.update_comment(_comment(feedback="Edited"))
        assert (await store.get_comment(1000)).feedback == "Edited"

    async def test_all_comments_in_timestamp_order(self, make_store):
        store = make_store()
        await store.open()
        for ts in (3000, 1000, 2000):
            await store.add_comment(_comment(timestamp=ts))
        comments = await store.get_all_comments()
        assert [c.timestamp for c in comments] == [1000, 2000, 3000]

    async def test_comments_for_page(self, make_store):
        store = make_store()
        await store.open()
        await store.add_comment(_comment(timestamp=1, page="https://example.com/a"))
        await store.add_comment(_comment(timestamp=2, page="https://example.com/b"))
        await store.add_comment(_comment(timestamp=3, page="https://example.com/a"))
        comments = await store.get_comments_for_page("https://example.com/a")
        assert [c.timestamp for c in comments] == [1, 3]

    async def test_json_store_persists_camel_case_keys(self, tmp_path):
        store = JsonFeedbackStore("site1", data_dir=tmp_path)
        await store.open()
        await store.add_comment(_comment())
        document = json.loads((tmp_path / "bc-storage-site1.json").read_text())
        record = document["comments"]["1000"]
        assert record["pageUrl"] == "https://example.com/app1/page"
        assert record["elementText"] == "Welcom"


# ─────────────────────────────────────────────────────────────────────────────
# 4. Cache invalidation
# ─────────────────────────────────────────────────────────────────────────────

def _prime(cache):
    cache.set("https://cached.com", Package(id="p", root_url="https://cached.com"), "cached")
    assert cache.get("https://cached.com/x") is not None


class TestCacheInvalidation:

    async def test_seeding_clears_cache(self, make_store, cache):
        _prime(cache)
        store = make_store(seed=_package())
        await store.open()
        assert cache.get("https://cached.com/x") is None

    async def test_update_clears_cache(self, make_store, cache):
        store = make_store(seed=_package())
        await store.open()
        _prime(cache)
        await store.update_package(_package(name="New"))
        assert cache.get("https://cached.com/x") is None

    async def test_comment_writes_leave_cache(self, make_store, cache):
        store = make_store(seed=_package())
        await store.open()
        _prime(cache)
        await store.add_comment(_comment())
        assert isinstance(cache.get("https://cached.com/x"), ActiveFeedbackPackage)

    async def test_rejected_add_leaves_cache(self, make_store, cache):
        store = make_store(seed=_package())
        await store.open()
        _prime(cache)
        assert await store._add_package(_package()) is None
        assert cache.get("https://cached.com/x") is not None


# ─────────────────────────────────────────────────────────────────────────────
# 5. Concurrent writers
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture(params=["directory", "memory"])
def catalog(request, directory_catalog, memory_catalog):
    if request.param == "directory":
        return directory_catalog
    return memory_catalog


async def _add_through_own_store(catalog, comment):
    store = catalog.open_store("site1")
    assert await store.open()
    try:
        return await store.add_comment(comment)
    finally:
        store.close()


class TestConcurrentWrites:

    async def _seed(self, catalog):
        store = catalog.open_store("site1", _package())
        assert await store.open()
        store.close()

    async def _reopen(self, catalog):
        store = catalog.open_store("site1")
        assert await store.open()
        return store

    async def test_distinct_timestamps_all_persist(self, catalog):
        await self._seed(catalog)

        results = await asyncio.gather(
            *(_add_through_own_store(catalog, _comment(timestamp=1000 + i)) for i in range(10))
        )

        assert all(r is not None for r in results)
        store = await self._reopen(catalog)
        comments = await store.get_all_comments()
        assert [c.timestamp for c in comments] == [1000 + i for i in range(10)]
        assert (await store.get_package()).name == "Review"

    async def test_duplicate_timestamps_exactly_one_wins(self, catalog):
        await self._seed(catalog)

        results = await asyncio.gather(
            *(_add_through_own_store(catalog, _comment(feedback=f"note {i}")) for i in range(10))
        )

        winners = [r for r in results if r is not None]
        assert len(winners) == 1
        store = await self._reopen(catalog)
        comments = await store.get_all_comments()
        assert len(comments) == 1
        assert comments[0].feedback == winners[0].feedback
        assert (await store.get_package()).name == "Review"

    async def test_concurrent_package_updates_keep_one_package(self, catalog):
        await self._seed(catalog)

        async def update(i):
            store = catalog.open_store("site1")
            await store.open()
            try:
                return await store.update_package(_package(name=f"v{i}"))
            finally:
                store.close()

        results = await asyncio.gather(*(update(i) for i in range(5)))

        assert all(r is not None for r in results)
        store = await self._reopen(catalog)
        package = await store.get_package()
        assert package.name in {f"v{i}" for i in range(5)}

    async def test_no_temp_files_left_behind(self, directory_catalog):
        await self._seed(directory_catalog)

        await asyncio.gather(
            *(_add_through_own_store(directory_catalog, _comment(timestamp=1000 + i)) for i in range(5))
        )

        leftovers = [p.name for p in directory_catalog.data_dir.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []
        json.loads((directory_catalog.data_dir / "bc-storage-site1.json").read_text())
