"""
Screenshot worker: on-demand captures and cache maintenance.

Task types:
    take_screenshot          {url, selector?}
    take_element_screenshot  {url, selectors: [...]}
    batch_screenshots        {requests: [{url, selector?}, ...]}
    clear_cache / optimize_cache / cache_statistics   (no payload)

Every capture goes through the shared ``ScreenshotCache`` so repeated
requests are served from disk and visual duplicates collapse to one file.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..browser import BrowserSession
from ..crawl import PageCapturer
from ..errors import ScreenshotCaptureError
from ..screenshot_cache import ScreenshotCache
from .runtime import BaseAgent, Handler, Task, TaskResult


class ScreenshotAgent(BaseAgent):
    description = "Cached full-page and element screenshots"
    capabilities = ["screenshots", "cache_management"]

    def __init__(
        self,
        session: BrowserSession,
        cache: ScreenshotCache,
        capturer: Optional[PageCapturer] = None,
        name: str = "ScreenshotAgent",
    ):
        super().__init__(name)
        self.session = session
        self.cache = cache
        self.capturer = capturer or PageCapturer(cache)

    def task_handlers(self) -> Dict[str, Handler]:
        return {
            "take_screenshot": self._take_screenshot,
            "take_element_screenshot": self._take_element_screenshot,
            "batch_screenshots": self._batch_screenshots,
            "clear_cache": self._clear_cache,
            "optimize_cache": self._optimize_cache,
            "cache_statistics": self._cache_statistics,
        }

    # ── Captures ──────────────────────────────────────────────────

    async def _take_screenshot(self, task: Task) -> Dict[str, Any]:
        page = await self.session.start()
        url = task.payload["url"]
        selector = task.payload.get("selector")
        if selector:
            outcome = await self.capturer.capture_element(page, selector, url, navigate=True)
        else:
            outcome = await self.capturer.capture_page(page, url, navigate=True)
        return outcome.to_dict()

    async def _take_element_screenshot(self, task: Task) -> Dict[str, Any]:
        page = await self.session.start()
        url = task.payload["url"]
        captures: List[Dict[str, Any]] = []
        failures: List[Dict[str, str]] = []
        for selector in task.payload.get("selectors", []):
            try:
                outcome = await self.capturer.capture_element(page, selector, url, navigate=True)
            except ScreenshotCaptureError as exc:
                self.log.warning(f"[CAPTURE] {selector} skipped: {exc}")
                failures.append({"selector": selector, "error": str(exc)})
                continue
            captures.append({"selector": selector, **outcome.to_dict()})
        return {"url": url, "screenshots": captures, "failed": failures}

    async def _batch_screenshots(self, task: Task) -> Dict[str, Any]:
        page = await self.session.start()
        requests = task.payload.get("requests", [])
        results: List[Dict[str, Any]] = []
        stats = {"total": len(requests), "cacheHits": 0, "newScreenshots": 0, "duplicates": 0, "failed": 0}

        for req in requests:
            url, selector = req["url"], req.get("selector")
            try:
                if selector:
                    outcome = await self.capturer.capture_element(page, selector, url, navigate=True)
                else:
                    outcome = await self.capturer.capture_page(page, url, navigate=True)
            except ScreenshotCaptureError as exc:
                self.log.warning(f"[CAPTURE] {url} ({selector or 'fullpage'}) skipped: {exc}")
                stats["failed"] += 1
                results.append({"url": url, "selector": selector, "error": str(exc)})
                continue
            if outcome.from_cache:
                stats["cacheHits"] += 1
            elif outcome.duplicate:
                stats["duplicates"] += 1
            else:
                stats["newScreenshots"] += 1
            results.append({"selector": selector, **outcome.to_dict()})

        ok = stats["total"] - stats["failed"]
        stats["successRate"] = round(ok / stats["total"] * 100, 1) if stats["total"] else 0.0
        return {"results": results, "stats": stats}

    # ── Cache maintenance ─────────────────────────────────────────

    async def _clear_cache(self, task: Task) -> Dict[str, Any]:
        return {"filesDeleted": self.cache.clear()}

    async def _optimize_cache(self, task: Task) -> Dict[str, Any]:
        return self.cache.optimize()

    async def _cache_statistics(self, task: Task) -> Dict[str, Any]:
        return self.cache.statistics()

    def render_report(self, result: TaskResult) -> str:
        data = result.data if isinstance(result.data, dict) else {}
        if not result.success or "stats" not in data:
            return super().render_report(result)
        stats = data["stats"]
        return "\n".join([
            f"# {self.name} Report",
            "",
            "| Metric | Value |",
            "|---|---|",
            f"| Requested | {stats['total']} |",
            f"| Cache hits | {stats['cacheHits']} |",
            f"| New screenshots | {stats['newScreenshots']} |",
            f"| Duplicates | {stats['duplicates']} |",
            f"| Failed | {stats['failed']} |",
            f"| Success rate | {stats['successRate']}% |",
        ]) + "\n"
