"""
Navigation Drivers

Advance a flipbook viewer to its next page. Hash-navigation viewers jump by
rewriting the location fragment; click-navigation viewers press their "next"
control. The viewer kind is chosen once per session from the URL.
"""

import asyncio
import logging
import re
import time
from typing import Optional
from urllib.parse import urlsplit

from .config import ScannerConfig, get_config
from .data_structures import ViewerKind
from .dom import xpath

logger = logging.getLogger(__name__)

_PAGE_COUNT_RE = re.compile(r'^.*/\s*(\d+)\s*$', re.DOTALL)

# Hosts serving the fragment-addressed reader
HASH_NAV_HOSTS = ('fliphtml5.com', 'anyflip.com')


def detect_viewer_kind(url: str) -> ViewerKind:
    """Hash navigation for fliphtml5/anyflip readers, clicks for everything else."""
    host = (urlsplit(url).hostname or '').lower()
    for known in HASH_NAV_HOSTS:
        if host == known or host.endswith('.' + known):
            return ViewerKind.HASH_NAV
    return ViewerKind.CLICK_NAV


def parse_total_pages(text: str) -> int:
    """'12/340' -> 340; 0 when the text does not end in '/<N>'."""
    match = _PAGE_COUNT_RE.match(text or '')
    if not match:
        return 0
    return int(match.group(1))


class NavigationDriver:
    """Capability shared by both viewer families."""

    kind: ViewerKind

    def __init__(self, dom, config: Optional[ScannerConfig] = None):
        self.dom = dom
        self.config = config or get_config()

    async def is_ready(self) -> bool:
        raise NotImplementedError

    async def advance(self, page_number: int) -> bool:
        raise NotImplementedError

    async def total_page_count(self) -> int:
        return 0

    async def wait_until_ready(self, max_wait: Optional[float] = None) -> bool:
        """
        Poll is_ready() every ready_poll_interval seconds.

        With max_wait None (and no configured bound) this waits for as long as
        the viewer needs; otherwise returns False once the bound elapses.
        """
        if max_wait is None:
            max_wait = self.config.ready_max_wait
        interval = self.config.ready_poll_interval
        deadline = None if max_wait is None else time.monotonic() + max_wait

        attempts = 0
        while True:
            if await self.is_ready():
                if attempts:
                    logger.debug(f"Viewer ready after {attempts} poll(s)")
                return True
            attempts += 1
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning(f"Viewer not ready after {max_wait}s ({attempts} polls)")
                return False
            await asyncio.sleep(interval)


class HashNavDriver(NavigationDriver):
    """Jumps straight to a page by writing it into the location fragment."""

    kind = ViewerKind.HASH_NAV

    async def is_ready(self) -> bool:
        return await self.dom.is_visible(self.config.hash_ready_selector)

    async def advance(self, page_number: int) -> bool:
        fragment = self.config.hash_fragment_template.format(page=page_number)
        await self.dom.set_fragment(fragment)
        logger.debug(f"Navigated to {fragment}")
        return True


class ClickNavDriver(NavigationDriver):
    """Presses the viewer's next-page control."""

    kind = ViewerKind.CLICK_NAV

    @property
    def next_button(self) -> str:
        return xpath(self.config.click_next_button_xpath)

    async def is_ready(self) -> bool:
        return await self.dom.is_visible(self.next_button)

    async def advance(self, page_number: int) -> bool:
        clicked = await self.dom.click(self.next_button)
        if not clicked:
            logger.info(f"Next-page control unreachable before page {page_number}")
        return clicked

    async def total_page_count(self) -> int:
        text = await self.dom.input_value(xpath(self.config.click_page_indicator_xpath))
        total = parse_total_pages(text)
        logger.debug(f"Page indicator {text!r} -> total {total}")
        return total


def create_driver(kind: ViewerKind, dom, config: Optional[ScannerConfig] = None) -> NavigationDriver:
    """Driver for a viewer kind."""
    if kind == ViewerKind.HASH_NAV:
        return HashNavDriver(dom, config)
    if kind == ViewerKind.CLICK_NAV:
        return ClickNavDriver(dom, config)
    raise ValueError(f"Unknown viewer kind: {kind}")
