"""
Pytest Configuration and Fixtures

In-memory stand-ins for the Playwright page, the validator and the sleep
function so the scan loop runs without a browser or network.
"""

import re
from typing import Awaitable, Callable, List, Optional, Sequence, Union

import pytest

from flipscan.config import ScannerConfig
from flipscan.data_structures import ImageNode, PageSide
from flipscan.progress import ProgressChannel, StopToken
from flipscan.storage import MemoryStore

HASH_URL = "https://online.fliphtml5.com/abcde/fghij/"
CLICK_URL = "https://books.example.com/reader/book-42/index.html"

PageContent = Sequence[Union[str, ImageNode]]


def node(src: str, width: int = 1000, **kwargs) -> ImageNode:
    """Loaded image node; width decides the resolution filter without a fetch."""
    return ImageNode(src=src, complete=True, natural_width=width, **kwargs)


class FakeDom:
    """
    Scriptable viewer.

    `pages[i]` is what the viewer shows on page i+1. Hash navigation past the
    last page keeps showing the last page, like the real reader does.
    """

    def __init__(self, pages: List[PageContent], url: str = HASH_URL, ready: bool = True,
                 total_text: str = "", clickable: bool = True):
        self.pages = pages
        self.url = url
        self.fragment = ""
        self.index = 0
        self.ready = ready
        self.total_text = total_text
        self.clickable = clickable
        self.fragments: List[str] = []
        self.clicks = 0
        self.reloads = 0
        self.selectors: List[str] = []

    async def location(self) -> str:
        return self.url + self.fragment

    async def image_nodes(self, selector: str) -> List[ImageNode]:
        self.selectors.append(selector)
        if not self.pages or self.index >= len(self.pages):
            return []
        return [item if isinstance(item, ImageNode) else node(item) for item in self.pages[self.index]]

    async def is_visible(self, selector: str) -> bool:
        return self.ready

    async def click(self, selector: str) -> bool:
        if not (self.ready and self.clickable) or self.index >= len(self.pages) - 1:
            return False
        self.clicks += 1
        self.index += 1
        return True

    async def input_value(self, selector: str) -> str:
        return self.total_text

    async def set_fragment(self, fragment: str) -> None:
        self.fragment = fragment
        self.fragments.append(fragment)
        match = re.search(r"(\d+)", fragment)
        if match and self.pages:
            self.index = min(int(match.group(1)) - 1, len(self.pages) - 1)

    async def reload(self) -> None:
        self.reloads += 1
        self.index = 0
        self.fragment = ""


class FakeValidator:
    """
    Accepts everything except the URLs it was told to reject.

    on_accept is awaited for every accepted URL before the verdict returns,
    so a test can act at an exact point in the scan.
    """

    min_width = 550

    def __init__(self, reject: Optional[Sequence[str]] = None,
                 on_accept: Optional[Callable[[str], Awaitable[None]]] = None):
        self.reject = set(reject or [])
        self.on_accept = on_accept
        self.checked: List[str] = []
        self.closed = False

    async def is_acceptable(self, node, url: str) -> bool:
        self.checked.append(url)
        if url in self.reject:
            return False
        if self.on_accept is not None:
            await self.on_accept(url)
        return True

    async def close(self):
        self.closed = True


class FakeAssembler:
    """Records what it was asked to assemble."""

    def __init__(self, pdf: bytes = b"%PDF-1.4 fake"):
        self.pdf = pdf
        self.calls = []

    async def assemble(self, image_urls, options):
        from flipscan.errors import NoImagesError

        self.calls.append((list(image_urls), options))
        if not image_urls:
            raise NoImagesError()
        return self.pdf

    async def close(self):
        pass


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def config():
    """Scanner config with fast polling and no env influence on thresholds."""
    return ScannerConfig(
        max_pages=500,
        scan_speed_ms=100,
        repeat_threshold=3,
        empty_start_threshold=5,
        ready_poll_interval=0.01,
        ready_max_wait=None,
        redis_url=None,
        refresh_page_on_scan=True,
    )


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def channel(store):
    return ProgressChannel(maxsize=1000, stop_token=StopToken(store))


@pytest.fixture
def events(channel):
    """Every event emitted on the channel, in order."""
    received = []
    channel.subscribe(received.append)
    return received


@pytest.fixture
def validator():
    return FakeValidator()


def spread(left: str, right: str, **kwargs) -> List[ImageNode]:
    """Two-page spread for click viewers."""
    return [node(left, side=PageSide.LEFT, **kwargs), node(right, side=PageSide.RIGHT, **kwargs)]
