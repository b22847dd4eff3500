"""
Page renderer using Playwright for JavaScript rendering.

Keeps one browser page open as the render context of a run and navigates
it from URL to URL.
"""

import asyncio
from typing import Optional

from playwright.async_api import (
    async_playwright,
    Browser,
    Error as PlaywrightError,
    Page,
    TimeoutError as PlaywrightTimeout,
)

from .errors import PageLoadError, RenderTimeout
from ..utils.constants import DEFAULT_USER_AGENT, LOAD_POLL_INTERVAL
from ..utils.log import get_logger


class PageRenderer:
    """
    Renders web pages using a Playwright Chromium browser.

    The browser is launched lazily by open(); its headless mode follows
    the hidden flag of the first open() call.
    """

    def __init__(self, poll_interval: float = LOAD_POLL_INTERVAL):
        """
        Initialize the page renderer.

        Args:
            poll_interval: Seconds between document.readyState checks
        """
        self.poll_interval = poll_interval
        self.logger = get_logger("renderer")

        self._playwright = None
        self._browser: Optional[Browser] = None

    async def start(self, headless: bool = True) -> None:
        """
        Start the Playwright browser instance.
        """
        self.logger.info("Starting Playwright browser...")
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=headless,
            args=[
                '--disable-blink-features=AutomationControlled',
                '--no-sandbox',
                '--disable-setuid-sandbox',
                '--disable-dev-shm-usage',
            ]
        )
        self.logger.info("Browser started successfully")

    async def stop(self) -> None:
        """
        Stop the Playwright browser instance.
        """
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        try:
            if browser:
                await browser.close()
        except PlaywrightError as e:
            self.logger.warning(f"Error closing browser: {e}")
        if playwright:
            try:
                await playwright.stop()
            except PlaywrightError as e:
                self.logger.warning(f"Error stopping Playwright: {e}")
            self.logger.info("Browser stopped")

    async def open(self, url: str, hidden: bool = True) -> Page:
        """
        Create a fresh render context.

        Args:
            url: First URL the context is meant for (used for logging)
            hidden: Run the browser without a visible window

        Returns:
            Page used as the render context handle
        """
        if not self._browser:
            await self.start(headless=hidden)

        context = await self._browser.new_context(
            user_agent=DEFAULT_USER_AGENT,
            viewport={"width": 1920, "height": 1080},
            ignore_https_errors=True,
            accept_downloads=False,
        )
        self.logger.debug(f"Opened render context for {url}")
        return await context.new_page()

    async def navigate(self, page: Page, url: str, timeout_ms: int) -> None:
        """
        Point the render context at a URL.

        Raises:
            RenderTimeout: If the server did not answer in time
            PageLoadError: If navigation failed
        """
        self.logger.debug(f"Rendering: {url}")
        try:
            response = await page.goto(url, wait_until="commit", timeout=timeout_ms)
        except PlaywrightTimeout as e:
            raise RenderTimeout(f"timeout navigating to {url}") from e
        except PlaywrightError as e:
            raise PageLoadError((str(e).splitlines() or [repr(e)])[0]) from e

        if response is not None and response.status >= 400:
            raise PageLoadError(f"HTTP {response.status} for {url}")

    async def wait_until_loaded(self, page: Page, timeout_ms: int) -> bool:
        """
        Poll until the document finished loading.

        Returns:
            True once document.readyState is 'complete', False on timeout
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        while loop.time() < deadline:
            try:
                if await page.evaluate("document.readyState") == "complete":
                    return True
            except PlaywrightError:
                # Execution context replaced while the page commits
                pass
            await asyncio.sleep(self.poll_interval)
        return False

    async def close(self, page: Optional[Page]) -> None:
        """Tear down a render context."""
        if page is None:
            return
        try:
            await page.context.close()
        except PlaywrightError as e:
            self.logger.debug(f"Error closing render context: {e}")

