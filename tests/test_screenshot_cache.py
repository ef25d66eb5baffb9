"""
Tests for the screenshot cache: request-key hits, content dedup, TTL
expiry, optimisation and persistence.
"""

import asyncio
import json

import pytest

from conftest import Clock
from manualgen.errors import ScreenshotCaptureError
from manualgen.screenshot_cache import ScreenshotCache, request_key

VIEWPORT = (1920, 1080)


def _shooter(data: bytes, counter: list):
    async def shoot(target):
        counter.append(target)
        target.write_bytes(data)
    return shoot


def _pngs(directory):
    return sorted(p.name for p in directory.glob("*.png"))


class TestRequestKey:

    def test_selector_and_viewport_change_the_key(self):
        base = request_key("https://a.test/", None, VIEWPORT)
        assert base != request_key("https://a.test/", "#save", VIEWPORT)
        assert base != request_key("https://a.test/", None, (1280, 720))
        assert base == request_key("https://a.test/", None, VIEWPORT)


class TestCapture:

    def test_second_capture_is_served_from_cache(self, tmp_path):
        """Same request twice: no new file is written the second time."""
        cache = ScreenshotCache(str(tmp_path), clock=Clock(1000.0))
        writes = []

        async def scenario():
            first = await cache.capture("https://a.test/", None, VIEWPORT, _shooter(b"img-1", writes))
            second = await cache.capture("https://a.test/", None, VIEWPORT, _shooter(b"img-1", writes))
            return first, second

        first, second = asyncio.run(scenario())
        assert not first.from_cache
        assert second.from_cache and not second.duplicate
        assert second.path == first.path
        assert len(writes) == 1
        assert len(_pngs(tmp_path)) == 1

    def test_identical_bytes_from_different_requests_share_one_file(self, tmp_path):
        cache = ScreenshotCache(str(tmp_path), clock=Clock(1000.0))
        writes = []

        async def scenario():
            a = await cache.capture("https://a.test/x", None, VIEWPORT, _shooter(b"same", writes))
            b = await cache.capture("https://a.test/y", None, VIEWPORT, _shooter(b"same", writes))
            return a, b

        a, b = asyncio.run(scenario())
        assert b.duplicate and not b.from_cache
        assert b.path == a.path
        assert b.content_hash == a.content_hash
        assert len(_pngs(tmp_path)) == 1
        # the duplicate request is now a plain hit
        again = asyncio.run(cache.capture("https://a.test/y", None, VIEWPORT, _shooter(b"same", writes)))
        assert again.from_cache and again.path == a.path

    def test_expired_entry_is_recaptured(self, tmp_path):
        clock = Clock(1000.0)
        cache = ScreenshotCache(str(tmp_path), ttl_s=3600, clock=clock)
        writes = []
        asyncio.run(cache.capture("https://a.test/", None, VIEWPORT, _shooter(b"v1", writes)))

        clock.now += 3601
        outcome = asyncio.run(cache.capture("https://a.test/", None, VIEWPORT, _shooter(b"v2", writes)))
        assert not outcome.from_cache
        assert len(writes) == 2

    def test_expired_recapture_of_same_bytes_keeps_one_file(self, tmp_path):
        clock = Clock(1000.0)
        cache = ScreenshotCache(str(tmp_path), ttl_s=100, clock=clock)
        writes = []
        first = asyncio.run(cache.capture("https://a.test/", None, VIEWPORT, _shooter(b"same", writes)))

        clock.now += 200
        second = asyncio.run(cache.capture("https://a.test/", None, VIEWPORT, _shooter(b"same", writes)))
        assert not second.from_cache
        assert second.content_hash == first.content_hash
        assert len(writes) == 2
        assert _pngs(tmp_path) == [second.path.split("/")[-1]]
        assert cache.statistics()["uniqueImages"] == 1

    def test_expired_entry_keeps_file_shared_with_fresh_entry(self, tmp_path):
        clock = Clock(1000.0)
        cache = ScreenshotCache(str(tmp_path), ttl_s=100, clock=clock)
        writes = []
        first = asyncio.run(cache.capture("https://a.test/x", None, VIEWPORT, _shooter(b"same", writes)))
        clock.now += 60
        asyncio.run(cache.capture("https://a.test/y", None, VIEWPORT, _shooter(b"same", writes)))

        clock.now += 50   # x is stale, y is not
        assert cache.lookup("https://a.test/x", None, VIEWPORT) is None
        hit = cache.lookup("https://a.test/y", None, VIEWPORT)
        assert hit is not None and hit.storage_path == first.path
        assert len(_pngs(tmp_path)) == 1

    def test_missing_file_is_recaptured(self, tmp_path):
        cache = ScreenshotCache(str(tmp_path), clock=Clock(1000.0))
        writes = []
        first = asyncio.run(cache.capture("https://a.test/", None, VIEWPORT, _shooter(b"v1", writes)))
        (tmp_path / first.path.split("/")[-1]).unlink()

        outcome = asyncio.run(cache.capture("https://a.test/", None, VIEWPORT, _shooter(b"v1", writes)))
        assert not outcome.from_cache and not outcome.duplicate
        assert len(writes) == 2

    def test_failed_shot_leaves_no_file(self, tmp_path):
        cache = ScreenshotCache(str(tmp_path), clock=Clock(1000.0))

        async def broken(target):
            target.write_bytes(b"partial")
            raise RuntimeError("page crashed")

        with pytest.raises(ScreenshotCaptureError):
            asyncio.run(cache.capture("https://a.test/", None, VIEWPORT, broken))
        assert _pngs(tmp_path) == []
        assert len(cache) == 0

    def test_empty_image_is_an_error(self, tmp_path):
        cache = ScreenshotCache(str(tmp_path), clock=Clock(1000.0))
        with pytest.raises(ScreenshotCaptureError):
            asyncio.run(cache.capture("https://a.test/", None, VIEWPORT, _shooter(b"", [])))


class TestMaintenance:

    def test_optimize_reports_removed_entries(self, tmp_path):
        clock = Clock(1000.0)
        cache = ScreenshotCache(str(tmp_path), ttl_s=100, clock=clock)
        writes = []

        async def fill():
            old = await cache.capture("https://a.test/old", None, VIEWPORT, _shooter(b"old", writes))
            clock.now += 50
            gone = await cache.capture("https://a.test/gone", None, VIEWPORT, _shooter(b"gone", writes))
            keep = await cache.capture("https://a.test/keep", None, VIEWPORT, _shooter(b"keep", writes))
            return old, gone, keep

        old, gone, keep = asyncio.run(fill())
        (tmp_path / gone.path.split("/")[-1]).unlink()
        clock.now += 60   # "old" is now 110s old, the others 60s

        report = cache.optimize()
        assert report["removedMissing"] == 1
        assert report["removedExpired"] == 1
        assert report["removed"] == 2
        assert report["remaining"] == 1
        assert report["filesDeleted"] == 1          # the expired file
        assert [e.source_url for e in cache.entries] == ["https://a.test/keep"]

    def test_clear_deletes_files_and_entries(self, tmp_path):
        cache = ScreenshotCache(str(tmp_path), clock=Clock(1000.0))
        asyncio.run(cache.capture("https://a.test/", None, VIEWPORT, _shooter(b"x", [])))
        assert cache.clear() == 1
        assert len(cache) == 0
        assert _pngs(tmp_path) == []

    def test_index_is_flushed_and_reloaded(self, tmp_path):
        clock = Clock(1000.0)
        cache = ScreenshotCache(str(tmp_path), clock=clock)
        first = asyncio.run(cache.capture("https://a.test/", "#save", VIEWPORT, _shooter(b"x", [])))

        index = json.loads((tmp_path / "screenshot-cache.json").read_text())
        assert len(index["entries"]) == 1

        reloaded = ScreenshotCache(str(tmp_path), clock=clock)
        hit = reloaded.lookup("https://a.test/", "#save", VIEWPORT)
        assert hit is not None and hit.storage_path == first.path

    def test_statistics(self, tmp_path):
        cache = ScreenshotCache(str(tmp_path), clock=Clock(1000.0))
        asyncio.run(cache.capture("https://a.test/1", None, VIEWPORT, _shooter(b"abc", [])))
        asyncio.run(cache.capture("https://a.test/2", None, VIEWPORT, _shooter(b"abc", [])))
        stats = cache.statistics()
        assert stats["entries"] == 2
        assert stats["uniqueImages"] == 1
        assert stats["filesOnDisk"] == 1
        assert stats["bytesOnDisk"] == 3
