"""Tests for the progress store and its cache adapters."""

from pathlib import Path

from reader.state import SpoilerOverride, clamp_chapter
from reader.store import JsonFileCache, MemoryCache, ProgressStore


def test_clamp_chapter_bounds():
    assert clamp_chapter(0) == 1
    assert clamp_chapter(1) == 1
    assert clamp_chapter(539) == 539
    assert clamp_chapter(540) == 539
    assert clamp_chapter(50, max_chapter=40) == 40


def test_override_rejects_negative_tolerance():
    assert SpoilerOverride(tolerance_override=-4).tolerance_override == 0


class TestProgressStore:
    def test_empty_cache_reads_as_absent(self):
        store = ProgressStore(MemoryCache())
        assert store.read_local() is None

    def test_garbage_cache_value_reads_as_absent(self):
        cache = MemoryCache({"usogui-reading-progress": "chapter twelve"})
        assert ProgressStore(cache).read_local() is None

    def test_write_local_clamps(self):
        cache = MemoryCache()
        store = ProgressStore(cache)
        assert store.write_local(1000) == 539
        assert cache.get("usogui-reading-progress") == "539"
        assert store.write_local(-2) == 1

    def test_out_of_range_cache_value_is_clamped_on_read(self):
        cache = MemoryCache({"usogui-reading-progress": "999"})
        assert ProgressStore(cache).read_local() == 539

    def test_key_prefix(self):
        cache = MemoryCache()
        store = ProgressStore(cache, key_prefix="kakegurui")
        store.write_local(7)
        assert cache.snapshot() == {"kakegurui-reading-progress": "7"}

    def test_override_defaults(self):
        override = ProgressStore(MemoryCache()).read_override()
        assert override == SpoilerOverride(show_all=False, tolerance_override=0)

    def test_override_roundtrip(self):
        cache = MemoryCache()
        store = ProgressStore(cache)
        store.set_tolerance(120)
        store.toggle_show_all()
        override = store.read_override()
        assert override.tolerance_override == 120
        assert override.show_all is True
        assert cache.get("usogui-show-all-spoilers") == "true"
        assert store.toggle_show_all().show_all is False

    def test_negative_tolerance_is_stored_as_zero(self):
        store = ProgressStore(MemoryCache())
        assert store.set_tolerance(-10).tolerance_override == 0

    def test_detach_remote_keeps_local_value(self):
        store = ProgressStore(MemoryCache(), remote=object())
        store.write_local(88)
        assert store.is_identified
        store.detach_remote()
        assert not store.is_identified
        assert store.read_local() == 88

    def test_listeners_hear_writes_until_unsubscribed(self):
        store = ProgressStore(MemoryCache())
        heard = []
        unsubscribe = store.subscribe(lambda key, value: heard.append((key, value)))
        store.write_local(4)
        unsubscribe()
        store.write_local(5)
        assert heard == [("usogui-reading-progress", "4")]

    def test_failing_listener_does_not_break_write(self):
        store = ProgressStore(MemoryCache())

        def _boom(key, value):
            raise RuntimeError("listener broke")

        store.subscribe(_boom)
        assert store.write_local(6) == 6
        assert store.read_local() == 6


class TestJsonFileCache:
    def test_persists_across_instances(self, tmp_path: Path):
        path = tmp_path / "cache.json"
        JsonFileCache(path).set("usogui-reading-progress", "42")
        assert JsonFileCache(path).get("usogui-reading-progress") == "42"

    def test_missing_or_corrupt_file_is_empty(self, tmp_path: Path):
        path = tmp_path / "cache.json"
        assert JsonFileCache(path).get("anything") is None
        path.write_text("{not json")
        assert JsonFileCache(path).get("anything") is None

    def test_last_write_wins_and_keeps_other_keys(self, tmp_path: Path):
        path = tmp_path / "cache.json"
        tab_a = JsonFileCache(path)
        tab_b = JsonFileCache(path)
        tab_a.set("usogui-spoiler-tolerance", "10")
        tab_b.set("usogui-reading-progress", "12")
        fresh = JsonFileCache(path)
        assert fresh.get("usogui-spoiler-tolerance") == "10"
        assert fresh.get("usogui-reading-progress") == "12"

    def test_poll_notifies_about_other_writers(self, tmp_path: Path):
        path = tmp_path / "cache.json"
        store = ProgressStore(JsonFileCache(path))
        store.write_local(10)
        heard = []
        store.subscribe(lambda key, value: heard.append((key, value)))

        other_tab = ProgressStore(JsonFileCache(path))
        other_tab.write_local(25)

        assert store.poll() == ["usogui-reading-progress"]
        assert heard == [("usogui-reading-progress", "25")]
        assert store.read_local() == 25
        assert store.poll() == []

    def test_poll_on_memory_cache_is_noop(self):
        assert ProgressStore(MemoryCache()).poll() == []
