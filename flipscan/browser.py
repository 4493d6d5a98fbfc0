"""
Browser Session

Owns the Playwright browser that renders the flipbook viewer. Landing pages on
fliphtml5.com / anyflip.com are rewritten to their online.* reader URL first.
"""

import asyncio
import logging
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from .config import ScannerConfig, get_config
from .dom import PlaywrightDom

logger = logging.getLogger(__name__)

# landing host -> reader host
READER_HOSTS = {
    "https://fliphtml5.com": "https://online.fliphtml5.com",
    "https://anyflip.com": "https://online.anyflip.com",
}


def resolve_reader_url(url: str) -> str:
    """Map a landing URL to the reader that actually renders the pages."""
    for landing, reader in READER_HOSTS.items():
        if url == landing or url.startswith(landing + "/"):
            return reader + url[len(landing):]
    return url


class BrowserSession:
    """Async context manager around one Chromium page."""

    def __init__(self, config: Optional[ScannerConfig] = None):
        self.config = config or get_config()
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.dom: Optional[PlaywrightDom] = None

    async def __aenter__(self):
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.config.headless,
            args=['--no-sandbox', '--disable-dev-shm-usage'],
        )
        self._context = await self._browser.new_context(
            java_script_enabled=True,
            user_agent=self.config.user_agent,
            viewport={'width': self.config.viewport_width, 'height': self.config.viewport_height},
        )
        self.page = await self._context.new_page()
        self.page.set_default_timeout(self.config.navigation_timeout * 1000)
        self.dom = PlaywrightDom(self.page)
        logger.info("Browser launched for flipbook scanning")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self, url: str) -> str:
        """Navigate to the reader for `url` and return the URL actually loaded."""
        target = resolve_reader_url(url)
        await self.page.goto(target, wait_until='domcontentloaded')
        if target != url:
            logger.info(f"Rewrote {url} to reader URL {target}")
            await asyncio.sleep(self.config.redirect_wait)
        return self.page.url

    async def refresh(self) -> None:
        """Reload the viewer so it starts from a clean DOM."""
        await self.dom.reload()
        await asyncio.sleep(self.config.reload_wait)

    async def close(self):
        """Close context, browser and Playwright, logging but not raising."""
        for resource, name in ((self._context, "context"), (self._browser, "browser")):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.warning(f"Error closing {name}: {e}")
        self._context = None
        self._browser = None
        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping playwright: {e}")
            finally:
                self._playwright = None
