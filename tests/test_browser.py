"""
Tests for the browser session and the Playwright DOM adapter.

Playwright is mocked; no browser is launched.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

from flipscan.browser import BrowserSession, resolve_reader_url
from flipscan.config import ScannerConfig
from flipscan.data_structures import PageSide
from flipscan.dom import PlaywrightDom, xpath


class TestResolveReaderUrl:

    @pytest.mark.parametrize("url,expected", [
        ("https://fliphtml5.com/abcde/fghij/", "https://online.fliphtml5.com/abcde/fghij/"),
        ("https://anyflip.com/abc/def", "https://online.anyflip.com/abc/def"),
        ("https://online.fliphtml5.com/abcde/fghij/", "https://online.fliphtml5.com/abcde/fghij/"),
        ("https://fliphtml5.com.evil.example/x", "https://fliphtml5.com.evil.example/x"),
        ("https://books.example.com/reader/", "https://books.example.com/reader/"),
    ])
    def test_rewrites_landing_hosts_only(self, url, expected):
        assert resolve_reader_url(url) == expected


def mock_playwright():
    page = MagicMock()
    page.url = "https://online.fliphtml5.com/abcde/fghij/"
    page.goto = AsyncMock()
    page.reload = AsyncMock()
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()
    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.stop = AsyncMock()
    starter = MagicMock()
    starter.start = AsyncMock(return_value=playwright)
    return starter, playwright, browser, context, page


class TestBrowserSession:
    """BrowserSession lifecycle."""

    def setup_method(self):
        self.config = ScannerConfig(redirect_wait=0.5, reload_wait=0.25, headless=True)
        self.starter, self.playwright, self.browser, self.context, self.page = mock_playwright()
        self.patcher = patch('flipscan.browser.async_playwright', return_value=self.starter)
        self.patcher.start()

    def teardown_method(self):
        self.patcher.stop()

    @pytest.mark.asyncio
    async def test_open_rewrites_and_waits(self):
        with patch('flipscan.browser.asyncio.sleep', new=AsyncMock()) as sleep:
            async with BrowserSession(self.config) as session:
                loaded = await session.open("https://fliphtml5.com/abcde/fghij/")

        assert loaded == self.page.url
        self.page.goto.assert_awaited_once_with("https://online.fliphtml5.com/abcde/fghij/",
                                                wait_until='domcontentloaded')
        sleep.assert_awaited_once_with(0.5)
        self.context.close.assert_awaited_once()
        self.browser.close.assert_awaited_once()
        self.playwright.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_open_reader_url_does_not_wait(self):
        with patch('flipscan.browser.asyncio.sleep', new=AsyncMock()) as sleep:
            async with BrowserSession(self.config) as session:
                await session.open("https://online.fliphtml5.com/abcde/fghij/")
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refresh_reloads_page(self):
        with patch('flipscan.browser.asyncio.sleep', new=AsyncMock()) as sleep:
            async with BrowserSession(self.config) as session:
                assert isinstance(session.dom, PlaywrightDom)
                await session.refresh()
        self.page.reload.assert_awaited_once()
        sleep.assert_awaited_once_with(0.25)

    @pytest.mark.asyncio
    async def test_close_errors_are_logged_not_raised(self):
        self.browser.close.side_effect = RuntimeError("already closed")
        async with BrowserSession(self.config):
            pass
        self.playwright.stop.assert_awaited_once()


class TestPlaywrightDom:
    """DOM adapter over a mocked Playwright page."""

    def setup_method(self):
        self.page = MagicMock()
        self.dom = PlaywrightDom(self.page)

    @pytest.mark.asyncio
    async def test_image_nodes(self):
        self.page.eval_on_selector_all = AsyncMock(return_value=[
            {"src": "./1.jpg", "complete": True, "natural_width": 900,
             "side": "left", "z_index": 3, "active": False},
        ])
        nodes = await self.dom.image_nodes("div.side-image img")
        assert nodes[0].src == "./1.jpg"
        assert nodes[0].side == PageSide.LEFT
        assert nodes[0].has_loaded_width

    @pytest.mark.asyncio
    async def test_image_nodes_during_navigation(self):
        self.page.eval_on_selector_all = AsyncMock(side_effect=PlaywrightError("Execution context was destroyed"))
        assert await self.dom.image_nodes("img") == []

    @pytest.mark.asyncio
    async def test_visibility_and_click(self):
        locator = MagicMock()
        locator.count = AsyncMock(return_value=1)
        locator.bounding_box = AsyncMock(return_value={"x": 0, "y": 0, "width": 40, "height": 40})
        locator.click = AsyncMock()
        self.page.locator.return_value.first = locator

        assert await self.dom.click(xpath("//div")) is True
        locator.click.assert_awaited_once()
        self.page.locator.assert_called_with("xpath=//div")

        locator.bounding_box = AsyncMock(return_value={"x": 0, "y": 0, "width": 0, "height": 0})
        assert await self.dom.is_visible("div") is False
        assert await self.dom.click("div") is False

    @pytest.mark.asyncio
    async def test_input_value_missing(self):
        locator = MagicMock()
        locator.count = AsyncMock(return_value=0)
        self.page.locator.return_value.first = locator
        assert await self.dom.input_value("input") == ""
