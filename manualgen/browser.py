"""
Browser Session
===============
One headless Chromium page shared by every phase of a pipeline run.

Login, crawl and screenshots all drive the same page so cookies, local
storage and DOM state carry over between phases.  ``close`` is safe to
call more than once and on a session that never started.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError

logger = logging.getLogger(__name__)

_LAUNCH_ARGS = [
    '--disable-gpu',
    '--no-sandbox',
    '--disable-dev-shm-usage',
    '--disable-background-networking',
    '--disable-default-apps',
    '--disable-extensions',
    '--disable-sync',
    '--no-first-run',
]


class BrowserSession:
    """Owns the Playwright driver, browser, context and the single page."""

    def __init__(
        self,
        *,
        headless: bool = True,
        viewport: Optional[Dict[str, int]] = None,
        user_agent: Optional[str] = None,
        navigation_timeout_ms: int = 30_000,
    ):
        self.headless = headless
        self.viewport = viewport or {'width': 1920, 'height': 1080}
        self.user_agent = user_agent
        self.navigation_timeout_ms = navigation_timeout_ms
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def started(self) -> bool:
        return self._page is not None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session not started")
        return self._page

    async def start(self) -> Page:
        if self._page is not None:
            return self._page
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=_LAUNCH_ARGS,
        )
        ctx_kwargs = dict(viewport=self.viewport, locale='en-US')
        if self.user_agent:
            ctx_kwargs['user_agent'] = self.user_agent
        self._context = await self._browser.new_context(**ctx_kwargs)
        self._context.set_default_navigation_timeout(self.navigation_timeout_ms)
        self._page = await self._context.new_page()
        logger.info(
            f"Playwright browser initialized "
            f"(headless={self.headless}, viewport={self.viewport['width']}x{self.viewport['height']})"
        )
        return self._page

    async def close(self) -> None:
        """Close page, context, browser and driver; errors are logged only."""
        for label, closer in (
            ('page', self._page.close if self._page else None),
            ('context', self._context.close if self._context else None),
            ('browser', self._browser.close if self._browser else None),
            ('playwright', self._playwright.stop if self._playwright else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except PlaywrightError as exc:
                logger.debug(f"Ignoring error while closing {label}: {exc}")
        self._page = self._context = self._browser = self._playwright = None
        logger.info("Browser session closed")

    async def pdf_from_html(self, html_path: str, pdf_path: str) -> str:
        """Render a local HTML file to PDF on a throwaway page."""
        if self._context is None:
            await self.start()
        page = await self._context.new_page()
        try:
            await page.goto(f"file://{html_path}", wait_until="load")
            await page.pdf(path=pdf_path, format="A4", print_background=True,
                           margin={'top': '1cm', 'bottom': '1cm', 'left': '1cm', 'right': '1cm'})
        finally:
            await page.close()
        return pdf_path
