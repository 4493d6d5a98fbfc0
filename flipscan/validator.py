"""
Image Validator

Drops confirmed low-resolution page images and keeps everything else. The
width comes from the DOM snapshot when the element already loaded; otherwise a
single httpx request is made and Pillow reads the header, bounded by one
timeout. Any failure keeps the image.
"""

import asyncio
import logging
from io import BytesIO
from typing import Optional

import httpx
from PIL import Image, UnidentifiedImageError

from .config import ScannerConfig, get_config
from .data_structures import ImageNode

logger = logging.getLogger(__name__)


class ImageValidator:
    """Resolution filter with a fail-open network fetch."""

    def __init__(self, config: Optional[ScannerConfig] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.config = config or get_config()
        self.min_width = self.config.min_image_width
        self.timeout = self.config.image_fetch_timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                headers={'User-Agent': self.config.user_agent},
                timeout=httpx.Timeout(self.config.http_timeout),
            )
        return self._client

    async def _fetch_width(self, url: str) -> int:
        """Download the image and return its pixel width."""
        client = await self._get_client()
        response = await client.get(url)
        response.raise_for_status()
        with Image.open(BytesIO(response.content)) as img:
            return img.width

    async def is_acceptable(self, node: Optional[ImageNode], url: str) -> bool:
        """Accept iff width >= min width; errors and timeouts accept."""
        if node is not None and node.has_loaded_width:
            return node.natural_width >= self.min_width

        try:
            width = await asyncio.wait_for(self._fetch_width(url), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Width check timed out after {self.timeout}s, keeping {url}")
            return True
        except (httpx.HTTPError, UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            logger.debug(f"Width check failed for {url}: {e}, keeping it")
            return True

        return width >= self.min_width

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
