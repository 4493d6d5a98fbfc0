"""
Tests for viewer detection and the navigation drivers.
"""

import pytest

from flipscan.config import ScannerConfig
from flipscan.data_structures import ViewerKind
from flipscan.navigator import (
    ClickNavDriver,
    HashNavDriver,
    create_driver,
    detect_viewer_kind,
    parse_total_pages,
)

from conftest import CLICK_URL, FakeDom


class TestViewerDetection:
    """Viewer kind is chosen from the URL host."""

    @pytest.mark.parametrize("url", [
        "https://online.fliphtml5.com/abcde/fghij/",
        "https://fliphtml5.com/abcde/fghij/",
        "https://online.anyflip.com/abc/def/#p=4",
    ])
    def test_hash_nav_hosts(self, url):
        assert detect_viewer_kind(url) == ViewerKind.HASH_NAV

    @pytest.mark.parametrize("url", [
        CLICK_URL,
        "https://notfliphtml5.com/book/",
        "file:///tmp/book.html",
    ])
    def test_other_hosts_click(self, url):
        assert detect_viewer_kind(url) == ViewerKind.CLICK_NAV

    def test_create_driver(self, config):
        dom = FakeDom([])
        assert isinstance(create_driver(ViewerKind.HASH_NAV, dom, config), HashNavDriver)
        assert isinstance(create_driver(ViewerKind.CLICK_NAV, dom, config), ClickNavDriver)


class TestParseTotalPages:

    @pytest.mark.parametrize("text,expected", [
        ("12/340", 340),
        ("1 / 6", 6),
        ("Page 3 / 12 ", 12),
        ("", 0),
        ("12", 0),
        ("3/", 0),
        ("a/b", 0),
    ])
    def test_parse(self, text, expected):
        assert parse_total_pages(text) == expected


class TestDrivers:
    """Driver actions against a fake viewer."""

    @pytest.mark.asyncio
    async def test_hash_advance_writes_fragment(self, config):
        dom = FakeDom([["a"], ["b"], ["c"]])
        driver = HashNavDriver(dom, config)

        assert await driver.advance(3) is True
        assert dom.fragments == ["#p=3"]
        assert dom.index == 2

    @pytest.mark.asyncio
    async def test_hash_total_is_unknown(self, config):
        assert await HashNavDriver(FakeDom([]), config).total_page_count() == 0

    @pytest.mark.asyncio
    async def test_click_advance_reports_unreachable(self, config):
        dom = FakeDom([["a"], ["b"]], url=CLICK_URL)
        driver = ClickNavDriver(dom, config)

        assert await driver.advance(2) is True
        assert await driver.advance(3) is False
        assert dom.clicks == 1

    @pytest.mark.asyncio
    async def test_click_total_from_indicator(self, config):
        dom = FakeDom([], url=CLICK_URL, total_text="4/18")
        assert await ClickNavDriver(dom, config).total_page_count() == 18

    def test_click_selectors_are_xpath(self, config):
        driver = ClickNavDriver(FakeDom([]), config)
        assert driver.next_button == "xpath=" + config.click_next_button_xpath


class TestWaitUntilReady:

    @pytest.mark.asyncio
    async def test_ready_immediately(self, config):
        assert await HashNavDriver(FakeDom([]), config).wait_until_ready() is True

    @pytest.mark.asyncio
    async def test_waits_until_viewer_appears(self, config):
        """Unbounded polling keeps going until the control shows up."""
        dom = FakeDom([], ready=False)
        driver = ClickNavDriver(dom, config)
        calls = {"n": 0}
        original = dom.is_visible

        async def appears_on_third_poll(selector):
            calls["n"] += 1
            if calls["n"] >= 3:
                dom.ready = True
            return await original(selector)

        dom.is_visible = appears_on_third_poll

        assert await driver.wait_until_ready() is True
        assert calls["n"] == 3

    @pytest.mark.asyncio
    async def test_bounded_wait_gives_up(self):
        config = ScannerConfig(ready_poll_interval=0.01, ready_max_wait=0.03)
        driver = HashNavDriver(FakeDom([], ready=False), config)
        assert await driver.wait_until_ready() is False

    @pytest.mark.asyncio
    async def test_explicit_bound_overrides_config(self, config):
        driver = HashNavDriver(FakeDom([], ready=False), config)
        assert await driver.wait_until_ready(max_wait=0.02) is False
