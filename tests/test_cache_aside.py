"""Tests for the cache-aside wrapper."""
import threading
from typing import List

import pytest

from manga_reader.caching.cache_aside import CacheAside
from manga_reader.core import errors
from manga_reader.core.entities import Manga


class CountingLoader:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.value


class TestGetOrLoad:
    def test_miss_loads_and_populates(self, cache, store):
        loader = CountingLoader(Manga(id=1, title="Berserk"))
        value = cache.get_or_load("manga:1", loader, 1800, Manga)
        assert value.title == "Berserk"
        assert loader.calls == 1
        assert store.exists("manga:1")

    def test_hit_skips_loader(self, cache):
        loader = CountingLoader(Manga(id=1, title="Berserk"))
        cache.get_or_load("manga:1", loader, 1800, Manga)
        again = cache.get_or_load("manga:1", loader, 1800, Manga)
        assert loader.calls == 1
        assert again == Manga(id=1, title="Berserk")
        assert cache.stats.hits == 1
        assert cache.stats.misses == 1

    def test_list_schema(self, cache):
        loader = CountingLoader([Manga(id=1, title="A"), Manga(id=2, title="B")])
        cache.get_or_load("manga:list:10:0", loader, 600, List[Manga])
        cached = cache.get_or_load("manga:list:10:0", loader, 600, List[Manga])
        assert [m.id for m in cached] == [1, 2]
        assert loader.calls == 1

    def test_entry_expires_after_ttl(self, cache, clock):
        loader = CountingLoader(Manga(id=1, title="Berserk"))
        cache.get_or_load("manga:1", loader, 60, Manga)
        clock.advance(seconds=61)
        cache.get_or_load("manga:1", loader, 60, Manga)
        assert loader.calls == 2

    def test_undecodable_entry_is_a_miss(self, cache, store):
        store.set("manga:1", "not json at all")
        loader = CountingLoader(Manga(id=1, title="Berserk"))
        assert cache.get_or_load("manga:1", loader, 1800, Manga).title == "Berserk"
        assert loader.calls == 1
        # The bad entry was overwritten
        assert "Berserk" in store.get("manga:1")

    def test_loader_error_propagates_and_writes_nothing(self, cache, store):
        def loader():
            raise errors.manga_not_found(99)

        with pytest.raises(errors.AppError) as exc:
            cache.get_or_load("manga:99", loader, 1800, Manga)
        assert exc.value.kind == errors.ErrorKind.MANGA_NOT_FOUND
        assert not store.exists("manga:99")

    def test_store_down_still_serves_from_loader(self, broken_store):
        cache = CacheAside(broken_store)
        loader = CountingLoader(Manga(id=1, title="Berserk"))
        assert cache.get_or_load("manga:1", loader, 1800, Manga).title == "Berserk"
        assert cache.get_or_load("manga:1", loader, 1800, Manga).title == "Berserk"
        assert loader.calls == 2
        assert cache.stats.errors == 4  # one failed read and one failed write per call

    def test_concurrent_misses_all_return_value(self, cache):
        loader = CountingLoader(Manga(id=1, title="Berserk"))
        results = []

        def read():
            results.append(cache.get_or_load("manga:1", loader, 1800, Manga))

        threads = [threading.Thread(target=read) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 8
        assert all(r.title == "Berserk" for r in results)
        assert 1 <= loader.calls <= 8


class TestInvalidation:
    def test_invalidate_forces_reload(self, cache):
        loader = CountingLoader(Manga(id=1, title="Berserk"))
        cache.get_or_load("manga:1", loader, 1800, Manga)
        assert cache.invalidate("manga:1") == 1
        cache.get_or_load("manga:1", loader, 1800, Manga)
        assert loader.calls == 2

    def test_invalidate_multiple_keys(self, cache, store):
        store.set("manga:1", "{}")
        store.set("manga:1:chapters", "[]")
        assert cache.invalidate("manga:1", "manga:1:chapters", "manga:2") == 2

    def test_invalidate_pattern_removes_every_match(self, cache, store):
        for limit in (10, 20):
            for offset in (0, 10, 20):
                store.set(f"manga:list:{limit}:{offset}", "[]")
        store.set("manga:1", "{}")

        assert cache.invalidate_pattern("manga:list:*") == 6
        assert list(store.scan_keys("manga:list:*")) == []
        assert store.exists("manga:1")

    def test_invalidate_pattern_is_not_a_literal_delete(self, cache, store):
        store.set("manga:list:10:0", "[]")
        cache.invalidate_pattern("manga:list:*")
        assert not store.exists("manga:list:10:0")

    def test_invalidate_pattern_batches_large_sets(self, cache, store, monkeypatch):
        monkeypatch.setattr("manga_reader.caching.cache_aside.DELETE_BATCH_SIZE", 3)
        for i in range(10):
            store.set(f"manga:list:{i}:0", "[]")
        assert cache.invalidate_pattern("manga:list:*") == 10

    def test_failures_are_absorbed(self, broken_store):
        cache = CacheAside(broken_store)
        assert cache.invalidate("manga:1") == 0
        assert cache.invalidate_pattern("manga:list:*") == 0
        assert cache.stats.errors == 2

    def test_invalidate_nothing(self, cache):
        assert cache.invalidate() == 0
