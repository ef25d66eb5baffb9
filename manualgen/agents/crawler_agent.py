"""
Crawler worker: runs the BFS crawl on the shared browser page.
"""

from __future__ import annotations

import dataclasses
from typing import Dict, Optional

from ..browser import BrowserSession
from ..crawl import CrawlConfig, CrawlEngine, ElementDetector, PageCapturer
from .runtime import BaseAgent, Handler, Task, TaskResult


class CrawlerAgent(BaseAgent):
    description = "Breadth-first crawl with interactive element detection"
    capabilities = ["crawling", "element_detection", "screenshots"]

    def __init__(
        self,
        session: BrowserSession,
        config: Optional[CrawlConfig] = None,
        *,
        capturer: Optional[PageCapturer] = None,
        detector: Optional[ElementDetector] = None,
        name: str = "CrawlerAgent",
    ):
        super().__init__(name)
        self.session = session
        self.config = config or CrawlConfig()
        self.capturer = capturer
        self.detector = detector or ElementDetector()

    def task_handlers(self) -> Dict[str, Handler]:
        return {
            "start_crawl": self._start_crawl,
            "detect_elements": self._detect_elements,
        }

    async def _start_crawl(self, task: Task) -> Dict:
        """Payload: ``url`` (required), ``enableScreenshots``, ``maxDepth``."""
        overrides = {}
        if "enableScreenshots" in task.payload:
            overrides["capture_screenshots"] = bool(task.payload["enableScreenshots"])
        if "maxDepth" in task.payload:
            overrides["max_depth"] = int(task.payload["maxDepth"])
        config = dataclasses.replace(self.config, **overrides)

        page = await self.session.start()
        engine = CrawlEngine(
            page,
            config,
            detector=self.detector,
            capturer=self.capturer if config.capture_screenshots else None,
        )
        result = await engine.crawl(task.payload["url"])
        if not result.pages:
            reasons = "; ".join(e["error"] for e in result.errors[:3]) or "no page could be loaded"
            raise RuntimeError(f"Crawl produced no pages: {reasons}")
        return result.to_dict()

    async def _detect_elements(self, task: Task) -> Dict:
        """Detect elements on one URL without crawling further."""
        page = await self.session.start()
        url = task.payload.get("url")
        if url and page.url != url:
            await page.goto(url, timeout=self.config.navigation_timeout_ms)
        elements = await self.detector.detect(page)
        navigation = await self.detector.detect_navigation(page)
        return {
            "url": page.url,
            "elements": [e.to_dict() for e in elements],
            "navigation": [n.to_dict() for n in navigation],
        }

    def render_report(self, result: TaskResult) -> str:
        if not result.success or "stats" not in (result.data or {}):
            return super().render_report(result)
        data = result.data
        stats = data["stats"]
        lines = [
            f"# {self.name} Report",
            "",
            f"- **Pages crawled:** {stats.get('pages', 0)}",
            f"- **Interactive elements:** {stats.get('totalElements', 0)}",
            f"- **Screenshots:** {stats.get('screenshots', 0)}",
            f"- **Failed pages:** {stats.get('pages_failed', 0)}",
            f"- **Elapsed:** {stats.get('elapsed_time', 0)} s",
            "",
            "| Depth | Page | Elements |",
            "|---|---|---|",
        ]
        for page in data["pages"]:
            lines.append(f"| {page['depth']} | {page['title'][:60]} | {len(page['elements'])} |")
        if data["errors"]:
            lines += ["", "## Skipped pages", ""]
            lines += [f"- {e['url']}: {e['error']}" for e in data["errors"]]
        return "\n".join(lines) + "\n"
