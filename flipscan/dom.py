"""
DOM access over a Playwright page.

The scanner never touches Playwright directly; it reads snapshots and issues
the few viewer actions it needs through `PlaywrightDom`.
"""

import logging
from typing import List

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .data_structures import ImageNode

logger = logging.getLogger(__name__)

# Reads every matched <img> in document order. Side comes from the nearest
# ancestor class mentioning left/right, z-index from the nearest ancestor
# with a non-auto computed z-index.
_IMAGE_NODES_JS = """
(elements) => elements.map((img) => {
    let side = 'single';
    let zIndex = 0;
    let node = img;
    let zFound = false;
    while (node && node !== document.body) {
        const cls = (node.className && typeof node.className === 'string') ? node.className.toLowerCase() : '';
        if (side === 'single') {
            if (/(^|[^a-z])left/.test(cls)) side = 'left';
            else if (/(^|[^a-z])right/.test(cls)) side = 'right';
        }
        if (!zFound) {
            const z = window.getComputedStyle(node).zIndex;
            if (z && z !== 'auto') { zIndex = parseInt(z, 10) || 0; zFound = true; }
        }
        node = node.parentElement;
    }
    return {
        src: img.getAttribute('src') || '',
        complete: !!img.complete,
        natural_width: img.naturalWidth || 0,
        side: side,
        z_index: zIndex,
        active: !!img.closest('.active, .current, .cur'),
    };
})
"""


class PlaywrightDom:
    """Read-mostly view of a flipbook viewer page."""

    def __init__(self, page: Page):
        self.page = page

    async def location(self) -> str:
        return self.page.url

    async def image_nodes(self, selector: str) -> List[ImageNode]:
        """Snapshot the image elements matched by a CSS selector."""
        try:
            raw = await self.page.eval_on_selector_all(selector, _IMAGE_NODES_JS)
        except PlaywrightError as e:
            # Happens while the viewer swaps documents mid-transition
            logger.debug(f"Image snapshot failed for {selector}: {e}")
            return []
        return [ImageNode.model_validate(item) for item in raw]

    async def is_visible(self, selector: str) -> bool:
        """True iff the first match exists and has a nonzero rendered box."""
        locator = self.page.locator(selector).first
        try:
            if await locator.count() == 0:
                return False
            box = await locator.bounding_box()
        except PlaywrightError as e:
            logger.debug(f"Visibility check failed for {selector}: {e}")
            return False
        return bool(box) and box['width'] > 0 and box['height'] > 0

    async def click(self, selector: str) -> bool:
        """Click the first match if it is visible."""
        if not await self.is_visible(selector):
            return False
        try:
            await self.page.locator(selector).first.click()
            return True
        except PlaywrightError as e:
            logger.warning(f"Click failed for {selector}: {e}")
            return False

    async def input_value(self, selector: str) -> str:
        """Value of the first matching <input>, '' when absent."""
        locator = self.page.locator(selector).first
        try:
            if await locator.count() == 0:
                return ''
            return await locator.input_value() or ''
        except PlaywrightError as e:
            logger.debug(f"Input read failed for {selector}: {e}")
            return ''

    async def set_fragment(self, fragment: str) -> None:
        await self.page.evaluate("(fragment) => { window.location.hash = fragment; }", fragment)

    async def reload(self) -> None:
        await self.page.reload(wait_until='domcontentloaded')


def xpath(expression: str) -> str:
    """Playwright selector for an XPath expression."""
    return f"xpath={expression}"
