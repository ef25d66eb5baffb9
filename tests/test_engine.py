"""
Tests for the breadth-first crawl engine, run against an in-memory page.
"""

import asyncio

import pytest

from conftest import Clock, FakePage
from manualgen.crawl import CrawlConfig, CrawlEngine, PageCapturer
from manualgen.errors import NavigationError
from manualgen.screenshot_cache import ScreenshotCache

ROOT = "https://example.test/"


def _links(*paths):
    return "".join(f'<a href="{p}">{p}</a>' for p in paths)


def _config(**kwargs):
    kwargs.setdefault("page_delay_s", 0.0)
    kwargs.setdefault("element_delay_s", 0.0)
    kwargs.setdefault("capture_screenshots", False)
    return CrawlConfig(**kwargs)


def _crawl(page, config, **kwargs):
    engine = CrawlEngine(page, config, **kwargs)
    return engine, asyncio.run(engine.crawl(ROOT))


# ====================================================================
# Frontier
# ====================================================================

class TestFrontier:

    def test_fan_out_cap_bounds_the_first_level(self):
        """Root links to four pages; depth 1 with three links per page visits four URLs."""
        site = {
            ROOT: _links("/a", "/b", "/c", "/d"),
            ROOT + "a": "", ROOT + "b": "", ROOT + "c": "", ROOT + "d": "",
        }
        page = FakePage(site)
        _, result = _crawl(page, _config(max_depth=1, links_per_page=3))

        assert len(result.visited) == 4
        assert result.visited[0] == ROOT
        depth_one = [p for p in result.pages if p.depth == 1]
        assert len(depth_one) == 3
        assert {p.url for p in depth_one} < {ROOT + x for x in "abcd"}

    def test_breadth_first_order(self):
        site = {
            ROOT: _links("/a", "/b"),
            ROOT + "a": _links("/a1"),
            ROOT + "b": _links("/b1"),
            ROOT + "a1": "", ROOT + "b1": "",
        }
        _, result = _crawl(FakePage(site), _config(max_depth=2))
        assert result.visited == [ROOT, ROOT + "a", ROOT + "b", ROOT + "a1", ROOT + "b1"]
        assert [p.depth for p in result.pages] == [0, 1, 1, 2, 2]

    def test_no_page_is_visited_twice(self):
        site = {
            ROOT: _links("/a", "/b"),
            ROOT + "a": _links("/", "/b"),
            ROOT + "b": _links("/a", "/"),
        }
        page = FakePage(site)
        _, result = _crawl(page, _config(max_depth=3))
        assert sorted(result.visited) == sorted(site)
        assert len(page.visits) == len(set(page.visits)) == 3

    def test_links_beyond_max_depth_are_not_followed(self):
        site = {ROOT: _links("/a"), ROOT + "a": _links("/deep"), ROOT + "deep": ""}
        _, result = _crawl(FakePage(site), _config(max_depth=1))
        assert ROOT + "deep" not in result.visited

    def test_max_pages(self):
        site = {ROOT: _links("/a", "/b", "/c"), ROOT + "a": "", ROOT + "b": "", ROOT + "c": ""}
        _, result = _crawl(FakePage(site), _config(max_depth=1, max_pages=2))
        assert len(result.visited) == 2

    def test_external_links_are_ignored(self):
        site = {ROOT: _links("https://elsewhere.test/", "/a"), ROOT + "a": ""}
        _, result = _crawl(FakePage(site), _config(max_depth=1))
        assert result.visited == [ROOT, ROOT + "a"]


# ====================================================================
# Failures and pacing
# ====================================================================

class TestFailuresAndPacing:

    def test_failing_page_is_skipped(self):
        site = {ROOT: _links("/broken", "/ok"), ROOT + "broken": "", ROOT + "ok": ""}
        page = FakePage(site, statuses={ROOT + "broken": 500})
        _, result = _crawl(page, _config(max_depth=1))

        assert result.visited == [ROOT, ROOT + "ok"]
        assert result.errors[0]["url"] == ROOT + "broken"
        assert "HTTP 500" in result.errors[0]["error"]
        assert result.stats["pages_failed"] == 1

    def test_missing_page_is_skipped(self):
        site = {ROOT: _links("/gone")}
        _, result = _crawl(FakePage(site), _config(max_depth=1))
        assert result.visited == [ROOT]
        assert len(result.errors) == 1

    def test_invalid_start_url(self):
        engine = CrawlEngine(FakePage({}), _config())
        with pytest.raises(NavigationError):
            asyncio.run(engine.crawl("ftp://example.test/"))

    def test_politeness_delay_between_loads(self, sleep):
        site = {ROOT: _links("/a", "/b"), ROOT + "a": "", ROOT + "b": ""}
        _crawl(FakePage(site), _config(max_depth=1, page_delay_s=1.0), sleep=sleep)
        assert sleep.calls == [1.0, 1.0]


# ====================================================================
# Records and screenshots
# ====================================================================

class TestRecords:

    def test_record_fields_and_stats(self):
        site = {ROOT: _links("/a"), ROOT + "a": ""}
        _, result = _crawl(FakePage(site), _config(max_depth=1))
        first = result.pages[0].to_dict()
        assert first["url"] == ROOT
        assert first["title"] == f"Title of {ROOT}"
        assert first["elements"] == []
        assert first["pageKind"] == "unknown"
        assert result.stats["pages"] == 2
        assert result.stats["maxDepth"] == 1

    def test_full_page_screenshots_go_through_the_cache(self, tmp_path):
        site = {ROOT: _links("/a"), ROOT + "a": ""}
        page = FakePage(site, png={ROOT: b"same", ROOT + "a": b"same"})
        cache = ScreenshotCache(str(tmp_path), clock=Clock(1000.0))
        capturer = PageCapturer(cache)
        _, result = _crawl(page, _config(max_depth=1, capture_screenshots=True), capturer=capturer)

        refs = [p.screenshot_refs for p in result.pages]
        assert refs[0] == refs[1]             # identical bytes share one file
        assert result.stats["screenshots"] == 1
        assert page.screenshots == 2
        assert len(list(tmp_path.glob("*.png"))) == 1
