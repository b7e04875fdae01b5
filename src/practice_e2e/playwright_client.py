"""
Direct Playwright Client
========================

Launches Playwright in-process and hands out isolated browser contexts.
Every Actor gets its own context from here, so cookies and localStorage are
never shared between scenarios.

Usage:
    async with PlaywrightClient() as client:
        context = await client.new_context()
        page = await context.new_page()
        await page.goto("/enter-email")
"""

import logging
from typing import Any, Optional

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from practice_e2e.config import settings

logger = logging.getLogger(__name__)


class PlaywrightClient:
    """
    Direct Playwright client (no server required).

    Example:
        async with PlaywrightClient(headless=False) as client:
            context = await client.new_context()
    """

    def __init__(
        self,
        browser_type: Optional[str] = None,
        headless: Optional[bool] = None,
        timeout: Optional[int] = None,
        base_url: Optional[str] = None,
    ):
        """
        Initialize Playwright client.

        Args:
            browser_type: Browser to use (chromium, firefox, webkit)
            headless: Run in headless mode (None = PLAYWRIGHT_HEADLESS)
            timeout: Default timeout in milliseconds for every context
            base_url: Base URL applied to every new context
        """
        self.browser_type = browser_type or settings.browser_type
        self.headless = settings.playwright_headless if headless is None else headless
        self.timeout = timeout or settings.default_timeout_ms
        self.base_url = base_url or settings.base_url

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def __aenter__(self) -> "PlaywrightClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        """Launch the configured browser."""
        self._playwright = await async_playwright().start()

        if self.browser_type == "firefox":
            self._browser = await self._playwright.firefox.launch(headless=self.headless)
        elif self.browser_type == "webkit":
            self._browser = await self._playwright.webkit.launch(headless=self.headless)
        else:
            self._browser = await self._playwright.chromium.launch(headless=self.headless)

        logger.debug(f"Launched {self.browser_type} (headless={self.headless})")

    async def new_context(self, **kwargs: Any) -> BrowserContext:
        """
        Create a new isolated browser context.

        Args:
            **kwargs: Context options (viewport, locale, ...) overriding the defaults

        Returns:
            BrowserContext with the default timeout applied
        """
        if not self._browser:
            raise RuntimeError("Client not connected. Use 'async with' or call connect()")

        options: dict[str, Any] = {"base_url": self.base_url, "viewport": dict(settings.viewport)}
        options.update(kwargs)
        context = await self._browser.new_context(**options)
        context.set_default_timeout(self.timeout)
        return context

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        if self._browser:
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
