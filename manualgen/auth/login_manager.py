"""
Login Manager
=============
Playwright-based username/password login on the shared crawl page.

Handles:
    - Standard username/password forms
    - Two-step forms (username, "Next", then password)
    - JS-rendered forms that appear after load

Success is judged after submit: the final URL must no longer look like
a login page (``login`` / ``signin`` / ``sign-in``) and no
visible error banner may be present.

Security:
    - Credentials are never logged or printed.
    - Only the login URL and success/failure status appear in logs.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .credentials import Credentials

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Auto-detection selector banks
# ---------------------------------------------------------------------------

_USERNAME_SELECTORS: List[str] = [
    '#username', '#userName', '#user', '#email', '#login',
    'input[name="username"]', 'input[name="user"]', 'input[name="email"]',
    'input[name="login"]', 'input[name="cpf"]',
    'input[type="email"]',
    'input[type="text"][name*="user"]',
    'input[type="text"][autocomplete="username"]',
    'input[type="text"]',
]

_PASSWORD_SELECTORS: List[str] = [
    '#password', '#senha', '#pwd',
    'input[name="password"]', 'input[name="senha"]',
    'input[type="password"]',
]

_SUBMIT_SELECTORS: List[str] = [
    'button[type="submit"]',
    'input[type="submit"]',
    'button:has-text("Sign in")',
    'button:has-text("Log in")',
    'button:has-text("Login")',
    'button:has-text("Entrar")',
    'button:has-text("Acessar")',
    'button:has-text("Continue")',
]

_NEXT_SELECTORS: List[str] = [
    'button:has-text("Next")',
    'button:has-text("Continue")',
    'button:has-text("Próximo")',
    'input[value="Next"]',
]

_ERROR_SELECTORS: List[str] = [
    '.error', '.error-message', '.alert-danger', '.alert-error',
    '.login-error', '[role="alert"]', '.invalid-feedback',
]

_LOGIN_URL_MARKERS = ('login', 'signin', 'sign-in')


@dataclass
class LoginConfig:
    login_timeout_ms: int = 30_000
    field_timeout_ms: int = 5_000
    post_login_wait_ms: int = 1_500
    username_selector: Optional[str] = None
    password_selector: Optional[str] = None
    submit_selector: Optional[str] = None


class LoginManager:
    """Performs the login flow on an existing page.

    Usage::

        manager = LoginManager()
        ok = await manager.login(page, Credentials("ana", "secret", "https://app/login"))
    """

    def __init__(self, config: Optional[LoginConfig] = None):
        self.config = config or LoginConfig()

    async def login(self, page: Page, creds: Credentials, fallback_url: str = "") -> bool:
        """Execute the full login flow.

        Steps:
            1. Navigate to the login URL
            2. Fill the username field
            3. Fill the password field (clicking "Next" first if needed)
            4. Submit
            5. Verify the result

        Returns:
            True if login was successful, False otherwise.
        """
        login_url = creds.login_url or fallback_url
        logger.info(f"[AUTH] Navigating to login page: {login_url[:80]}")

        # ── Step 1: Navigate ─────────────────────────────────────────
        try:
            resp = await page.goto(login_url, timeout=self.config.login_timeout_ms, wait_until="load")
        except PlaywrightTimeout:
            logger.error("[AUTH] Timeout navigating to login page")
            return False
        except PlaywrightError as exc:
            logger.error(f"[AUTH] Could not open login page: {exc}")
            return False
        if resp and resp.status >= 400:
            logger.error(f"[AUTH] Login page returned HTTP {resp.status}")
            return False

        try:
            await page.wait_for_load_state("networkidle", timeout=10_000)
        except PlaywrightTimeout:
            pass

        # ── Step 2: Username ─────────────────────────────────────────
        username_sel = await self._find_field(page, self.config.username_selector, _USERNAME_SELECTORS)
        if not username_sel:
            logger.error("[AUTH] Could not find username field")
            return False
        await page.fill(username_sel, creds.username)
        logger.info("[AUTH] Username filled")

        # ── Step 3: Password (may be on a second step) ───────────────
        password_sel = await self._find_field(page, self.config.password_selector, _PASSWORD_SELECTORS)
        if not password_sel and await self._click_first(page, _NEXT_SELECTORS):
            await asyncio.sleep(1.0)
            password_sel = await self._find_field(
                page, self.config.password_selector, _PASSWORD_SELECTORS, wait=True,
            )
        if not password_sel:
            logger.error("[AUTH] Could not find password field")
            return False
        await page.fill(password_sel, creds.password)
        logger.info("[AUTH] Password filled")

        # ── Step 4: Submit ───────────────────────────────────────────
        submit_selectors = [self.config.submit_selector] if self.config.submit_selector else _SUBMIT_SELECTORS
        if await self._click_first(page, submit_selectors):
            logger.info("[AUTH] Submit clicked")
        else:
            logger.info("[AUTH] No submit button found, pressing Enter")
            try:
                await page.press(password_sel, "Enter", no_wait_after=True)
            except PlaywrightTimeout:
                pass

        # ── Step 5: Verify ───────────────────────────────────────────
        success = await self._verify(page)
        if success:
            logger.info("[AUTH] Login successful")
        else:
            logger.error("[AUTH] Login verification failed")
        return success

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _find_field(
        self,
        page: Page,
        explicit: Optional[str],
        fallbacks: List[str],
        wait: bool = False,
    ) -> Optional[str]:
        """Return the first visible selector, trying *explicit* alone if set."""
        candidates = [explicit] if explicit else fallbacks
        for sel in candidates:
            try:
                el = await page.query_selector(sel)
                if el and await el.is_visible():
                    return sel
            except PlaywrightError:
                continue
        if wait and candidates:
            try:
                await page.wait_for_selector(candidates[-1], timeout=self.config.field_timeout_ms, state="visible")
                return candidates[-1]
            except PlaywrightTimeout:
                return None
        return None

    async def _click_first(self, page: Page, selectors: List[str]) -> bool:
        for sel in selectors:
            try:
                btn = await page.query_selector(sel)
                if btn and await btn.is_visible():
                    await btn.click(timeout=5_000, no_wait_after=True)
                    return True
            except PlaywrightTimeout:
                return True
            except PlaywrightError:
                continue
        return False

    async def _verify(self, page: Page) -> bool:
        try:
            await page.wait_for_load_state("networkidle", timeout=self.config.login_timeout_ms)
        except PlaywrightTimeout:
            pass
        if self.config.post_login_wait_ms > 0:
            await asyncio.sleep(self.config.post_login_wait_ms / 1000)

        current_url = page.url.lower()
        logger.info(f"[AUTH] Post-login URL: {page.url[:120]}")

        for sel in _ERROR_SELECTORS:
            try:
                err = await page.query_selector(sel)
                if err and await err.is_visible():
                    text = (await err.inner_text()).strip()[:200]
                    if text:
                        logger.error(f"[AUTH] Login error on page ({sel}): {text}")
                        return False
            except PlaywrightError:
                continue

        return not any(marker in current_url for marker in _LOGIN_URL_MARKERS)
