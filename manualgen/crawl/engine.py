"""
Crawl Traversal Engine
======================
Breadth-first traversal of one host, one page at a time, on a single
shared Playwright page.

Frontier rules:
    - seeded with ``(start_url, 0)``
    - a URL enters the frontier at most once: the check happens when the
      link is discovered, so the queue never holds duplicates
    - links are discovered only on pages with ``depth < max_depth``
    - at most ``links_per_page`` unseen same-host links are enqueued per
      page, in document order
    - a fixed politeness delay separates consecutive page loads

A page that fails to load (timeout, detached frame, HTTP error) is
logged and skipped; the crawl carries on with the next frontier entry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Deque, Dict, List, Optional, Set, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeout

from ..errors import ElementDetectionError, NavigationError, ScreenshotCaptureError
from ..utils import ProgressTracker, URLNormalizer
from .capture import PageCapturer
from .detection import ElementDetector, InteractiveElement
from .links import extract_links

logger = logging.getLogger(__name__)


@dataclass
class CrawlConfig:
    max_depth: int = 2
    max_pages: int = 20
    links_per_page: int = 3
    page_delay_s: float = 1.0
    element_delay_s: float = 0.3
    navigation_timeout_ms: int = 30_000
    capture_screenshots: bool = True
    max_element_screenshots: int = 5
    detect_navigation: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CrawlFrontierEntry:
    url: str
    depth: int


@dataclass(frozen=True)
class PageRecord:
    """Everything captured for one successfully loaded page."""
    url: str
    title: str
    depth: int
    elements: Tuple[InteractiveElement, ...]
    screenshot_refs: Tuple[str, ...]
    load_time_ms: float
    captured_at: float
    page_kind: str = "unknown"
    navigation: Tuple[Dict[str, Any], ...] = ()
    modals: Tuple[Dict[str, Any], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "depth": self.depth,
            "elements": [e.to_dict() for e in self.elements],
            "screenshotRefs": list(self.screenshot_refs),
            "loadTimeMs": round(self.load_time_ms, 1),
            "capturedAt": self.captured_at,
            "pageKind": self.page_kind,
            "navigation": list(self.navigation),
            "modals": list(self.modals),
        }


@dataclass
class CrawlResult:
    pages: List[PageRecord] = field(default_factory=list)
    visited: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_elements(self) -> int:
        return sum(len(p.elements) for p in self.pages)

    @property
    def total_screenshots(self) -> int:
        return len({ref for p in self.pages for ref in p.screenshot_refs})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pages": [p.to_dict() for p in self.pages],
            "visited": list(self.visited),
            "errors": list(self.errors),
            "stats": dict(self.stats),
        }


class CrawlEngine:
    """BFS crawler driving the element detector and the screenshot cache."""

    def __init__(
        self,
        page: Page,
        config: Optional[CrawlConfig] = None,
        *,
        detector: Optional[ElementDetector] = None,
        capturer: Optional[PageCapturer] = None,
        normalizer: Optional[URLNormalizer] = None,
        sleep=asyncio.sleep,
    ):
        self.page = page
        self.config = config or CrawlConfig()
        self.detector = detector or ElementDetector()
        self.capturer = capturer
        self.normalizer = normalizer or URLNormalizer()
        self._sleep = sleep

        self._frontier: Deque[CrawlFrontierEntry] = deque()
        self._queued: Set[str] = set()
        self._visited: Set[str] = set()
        self._visit_order: List[str] = []
        self._pages: List[PageRecord] = []
        self._errors: List[Dict[str, Any]] = []
        self.progress = ProgressTracker()

    # ── Public API ────────────────────────────────────────────────

    async def crawl(self, start_url: str) -> CrawlResult:
        start = self.normalizer.normalize(start_url)
        if not start:
            raise NavigationError(start_url, "not a crawlable http(s) URL")

        self._frontier.append(CrawlFrontierEntry(start, 0))
        self._queued.add(start)
        self.progress.start()
        first = True

        while self._frontier:
            if len(self._visited) >= self.config.max_pages:
                logger.info(f"Reached max pages limit: {self.config.max_pages}")
                break

            entry = self._frontier.popleft()
            if entry.depth > self.config.max_depth or entry.url in self._visited:
                self.progress.increment_skipped()
                continue

            if not first and self.config.page_delay_s > 0:
                await self._sleep(self.config.page_delay_s)
            first = False

            logger.info(f"[BFS] Depth:{entry.depth} | Queue:{len(self._frontier)} | {entry.url[:80]}")
            try:
                record = await self._process(entry)
            except (NavigationError, PlaywrightError) as exc:
                logger.warning(f"[BFS] Skipping {entry.url}: {exc}")
                self._errors.append({"url": entry.url, "depth": entry.depth, "error": str(exc)})
                self.progress.increment_failed()
                continue

            self._visited.add(entry.url)
            self._visit_order.append(entry.url)
            self._pages.append(record)
            self.progress.increment_crawled()

            if entry.depth < self.config.max_depth:
                await self._enqueue_links(entry)

        self.progress.finish()
        result = CrawlResult(
            pages=list(self._pages),
            visited=list(self._visit_order),
            errors=list(self._errors),
        )
        result.stats = {
            **self.progress.get_stats(),
            "pages": len(result.pages),
            "totalElements": result.total_elements,
            "screenshots": result.total_screenshots,
            "maxDepth": self.config.max_depth,
        }
        logger.info(
            f"[BFS] Done: {len(result.pages)} page(s), {result.total_elements} element(s), "
            f"{len(result.errors)} failure(s)"
        )
        return result

    @property
    def visited(self) -> Set[str]:
        return set(self._visited)

    # ── Per page ──────────────────────────────────────────────────

    async def _navigate(self, url: str) -> float:
        started = time.perf_counter()
        try:
            response = await self.page.goto(
                url, timeout=self.config.navigation_timeout_ms, wait_until="domcontentloaded",
            )
        except PlaywrightTimeout as exc:
            raise NavigationError(url, f"timeout after {self.config.navigation_timeout_ms} ms") from exc
        except PlaywrightError as exc:
            raise NavigationError(url, str(exc)) from exc
        if response is not None and response.status >= 400:
            raise NavigationError(url, f"HTTP {response.status}")
        try:
            await self.page.wait_for_load_state("networkidle", timeout=5_000)
        except PlaywrightTimeout:
            pass
        return (time.perf_counter() - started) * 1000

    async def _process(self, entry: CrawlFrontierEntry) -> PageRecord:
        load_ms = await self._navigate(entry.url)
        title = await self.page.title()

        try:
            elements = await self.detector.detect(self.page)
        except ElementDetectionError as exc:
            logger.warning(f"[DETECT] {exc}; continuing with no elements")
            elements = []

        page_kind = "unknown"
        navigation: List[Dict[str, Any]] = []
        modals: List[Dict[str, Any]] = []
        try:
            page_kind = (await self.detector.classify(self.page)).kind
            if self.config.detect_navigation:
                navigation = [n.to_dict() for n in await self.detector.detect_navigation(self.page)]
            modals = [m.to_dict() for m in await self.detector.detect_modals(self.page)]
        except ElementDetectionError as exc:
            logger.warning(f"[DETECT] {exc}")

        refs = await self._capture(entry.url, elements) if self.capturer else []

        return PageRecord(
            url=entry.url,
            title=title or entry.url,
            depth=entry.depth,
            elements=tuple(elements),
            screenshot_refs=tuple(refs),
            load_time_ms=load_ms,
            captured_at=time.time(),
            page_kind=page_kind,
            navigation=tuple(navigation),
            modals=tuple(modals),
        )

    async def _capture(self, url: str, elements: List[InteractiveElement]) -> List[str]:
        if not self.config.capture_screenshots:
            return []
        refs: List[str] = []
        try:
            refs.append((await self.capturer.capture_page(self.page, url)).path)
        except ScreenshotCaptureError as exc:
            logger.warning(f"[CAPTURE] Full page skipped: {exc}")

        for element in elements[: self.config.max_element_screenshots]:
            if self.config.element_delay_s > 0:
                await self._sleep(self.config.element_delay_s)
            try:
                outcome = await self.capturer.capture_element(self.page, element.selector, url)
            except ScreenshotCaptureError as exc:
                logger.warning(f"[CAPTURE] Element {element.selector} skipped: {exc}")
                continue
            if outcome.path not in refs:
                refs.append(outcome.path)
        return refs

    async def _enqueue_links(self, entry: CrawlFrontierEntry) -> None:
        try:
            html = await self.page.content()
        except PlaywrightError as exc:
            logger.warning(f"[FRONTIER] Could not read links on {entry.url}: {exc}")
            return

        links = extract_links(html, self.page.url or entry.url, normalizer=self.normalizer)
        enqueued = 0
        for link in links:
            if enqueued >= self.config.links_per_page:
                break
            if link in self._visited or link in self._queued:
                continue
            self._frontier.append(CrawlFrontierEntry(link, entry.depth + 1))
            self._queued.add(link)
            enqueued += 1

        logger.info(
            f"[FRONTIER] {entry.url[:60]} → links={len(links)} "
            f"enqueued={enqueued} queue_size={len(self._frontier)}"
        )
