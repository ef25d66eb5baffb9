"""
Page and element capture through the screenshot cache.

``PageCapturer`` binds a Playwright page to a ``ScreenshotCache``: the
cache decides whether a browser capture is needed at all, the capturer
only knows how to write the PNG.  New (non-duplicate) images are pushed
to object storage when one is configured.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeout

from ..errors import ScreenshotCaptureError
from ..screenshot_cache import CaptureOutcome, ScreenshotCache
from ..storage import ObjectStorage

logger = logging.getLogger(__name__)


class PageCapturer:
    """Full-page and element screenshots, one at a time, via the cache."""

    def __init__(
        self,
        cache: ScreenshotCache,
        *,
        viewport: Tuple[int, int] = (1920, 1080),
        selector_timeout_ms: int = 5_000,
        navigation_timeout_ms: int = 30_000,
        storage: Optional[ObjectStorage] = None,
    ):
        self.cache = cache
        self.viewport = viewport
        self.selector_timeout_ms = selector_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms
        self.storage = storage

    async def capture_page(self, page: Page, url: Optional[str] = None, *, navigate: bool = False) -> CaptureOutcome:
        """Full-page capture of *url* (the page's current URL by default).

        With ``navigate=True`` the page is moved to *url* first, but only
        when the cache cannot answer the request.
        """
        url = url or page.url

        async def _shoot(target: Path) -> None:
            if navigate:
                await self._goto(page, url)
            await page.screenshot(path=str(target), full_page=True)

        return await self._capture(url, None, _shoot)

    async def capture_element(
        self, page: Page, selector: str, url: Optional[str] = None, *, navigate: bool = False,
    ) -> CaptureOutcome:
        url = url or page.url

        async def _shoot(target: Path) -> None:
            if navigate:
                await self._goto(page, url)
            locator = page.locator(selector).first
            try:
                await locator.scroll_into_view_if_needed(timeout=self.selector_timeout_ms)
                await locator.screenshot(path=str(target), timeout=self.selector_timeout_ms)
            except PlaywrightTimeout as exc:
                raise ScreenshotCaptureError(f"Element {selector} not ready on {url}") from exc

        return await self._capture(url, selector, _shoot)

    async def _goto(self, page: Page, url: str) -> None:
        if page.url == url:
            return
        try:
            await page.goto(url, timeout=self.navigation_timeout_ms, wait_until="load")
        except PlaywrightTimeout as exc:
            raise ScreenshotCaptureError(f"Timeout opening {url} for capture") from exc

    async def _capture(self, url, selector, shoot) -> CaptureOutcome:
        outcome = await self.cache.capture(url, selector, self.viewport, shoot)
        if not outcome.from_cache and not outcome.duplicate:
            self._upload(outcome)
        return outcome

    def _upload(self, outcome: CaptureOutcome) -> None:
        if self.storage is None:
            return
        key = f"screenshots/{Path(outcome.path).name}"
        remote = self.storage.upload_file(outcome.path, key)
        if remote:
            logger.info(f"[STORAGE] Screenshot uploaded: {key}")
