"""
Page Extractor

Turns a snapshot of the viewer DOM into the absolute image URLs of the page
(or spread) currently on screen. Everything here is a pure function of the
snapshot except `read_page_images`, which takes the snapshot.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

from .config import ScannerConfig
from .data_structures import ImageNode, PageSide, ViewerKind

logger = logging.getLogger(__name__)

_SCHEME_RE = re.compile(r'^[a-z][a-z0-9+.-]*:', re.IGNORECASE)


def page_origin(location: str) -> str:
    """scheme://host[:port] of a URL."""
    parts = urlsplit(location)
    return urlunsplit((parts.scheme, parts.netloc, '', '', ''))


def flipbook_base_url(location: str) -> str:
    """Origin plus the directory of the current path, always ending in '/'."""
    parts = urlsplit(location)
    path = parts.path or '/'
    directory = path[:path.rfind('/') + 1]
    return urlunsplit((parts.scheme, parts.netloc, directory, '', ''))


def normalize_image_url(src: str, base_url: str) -> str:
    """
    Resolve an image src against the flipbook base URL.

    './x' -> base + 'x'; '/x' -> origin + '/x'; schemeless -> base + src;
    anything with a scheme passes through unchanged.
    """
    if src.startswith('./'):
        return base_url + src[2:]
    if src.startswith('/') and not src.startswith('//'):
        return page_origin(base_url) + src
    if not _SCHEME_RE.match(src):
        return urljoin(base_url, src)
    return src


def _topmost(nodes: Iterable[ImageNode]) -> Optional[ImageNode]:
    best = None
    for node in nodes:
        if best is None or (node.z_index, node.active) > (best.z_index, best.active):
            best = node
    return best


def _visible_nodes(nodes: List[ImageNode], kind: ViewerKind) -> List[ImageNode]:
    candidates = [node for node in nodes if node.src.strip()]
    if kind == ViewerKind.HASH_NAV:
        return candidates
    by_side: Dict[PageSide, List[ImageNode]] = {}
    for node in candidates:
        by_side.setdefault(node.side, []).append(node)
    selected = [_topmost(group) for group in by_side.values()]
    # keep document order between sides
    return [node for node in candidates if any(node is s for s in selected)]


def current_page_entries(nodes: List[ImageNode], base_url: str, kind: ViewerKind) -> List[Tuple[str, ImageNode]]:
    """(absolute url, node) pairs for the visible page(s), first occurrence wins."""
    entries = []
    seen = set()
    for node in _visible_nodes(nodes, kind):
        url = normalize_image_url(node.src.strip(), base_url)
        if url in seen:
            continue
        seen.add(url)
        entries.append((url, node))
    return entries


def current_page_images(nodes: List[ImageNode], base_url: str, kind: ViewerKind) -> List[str]:
    """Absolute image URLs for the visible page(s), in document order."""
    return [url for url, _ in current_page_entries(nodes, base_url, kind)]


def image_selector(kind: ViewerKind, config: ScannerConfig) -> str:
    if kind == ViewerKind.HASH_NAV:
        return config.hash_page_image_selector
    return config.click_page_image_selector


async def read_page_images(dom, kind: ViewerKind, config: ScannerConfig) -> List[Tuple[str, ImageNode]]:
    """Snapshot the viewer DOM and return the current page's (url, node) pairs."""
    location = await dom.location()
    nodes = await dom.image_nodes(image_selector(kind, config))
    entries = current_page_entries(nodes, flipbook_base_url(location), kind)
    logger.debug(f"Extracted {len(entries)} image(s) from {len(nodes)} node(s) at {location}")
    return entries
