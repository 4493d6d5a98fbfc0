"""
Document Assembler

Fetches the scanned page images in order and writes them into a multi-page PDF,
one image per page, fitted and centered on a fixed page size. Free-tier output
gets a tiled diagonal watermark. Pages that cannot be fetched or decoded are
skipped; a partial document is still returned.
"""

import base64
import logging
import math
import re
from datetime import datetime
from io import BytesIO
from typing import List, Literal, Optional, Tuple

import httpx
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError
from pydantic import BaseModel, Field

from .config import ScannerConfig, get_config
from .errors import AssemblyError, NoImagesError

logger = logging.getLogger(__name__)

Orientation = Literal["portrait", "landscape", "square"]

# Page sizes in PDF points (1/72 inch)
PAGE_SIZES = {
    "portrait": (595, 842),    # A4 210x297mm
    "landscape": (842, 595),   # A4 297x210mm
    "square": (595, 595),      # 210x210mm
}

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+)?(;base64)?,(?P<data>.*)$", re.IGNORECASE | re.DOTALL)


class AssemblyOptions(BaseModel):
    """Layout options for one document."""
    orientation: Orientation = "portrait"
    add_watermark: bool = Field(default=True, description="Burn the watermark into every page")
    title: Optional[str] = None


def default_filename(now: Optional[datetime] = None) -> str:
    """fliphtml5-<timestamp>.pdf"""
    now = now or datetime.now()
    return f"fliphtml5-{now.strftime('%Y-%m-%dT%H-%M-%S')}.pdf"


def page_size_pixels(orientation: str, resolution: float) -> Tuple[int, int]:
    width_pt, height_pt = PAGE_SIZES[orientation]
    return round(width_pt * resolution / 72), round(height_pt * resolution / 72)


def fit_within(image_size: Tuple[int, int], box: Tuple[int, int]) -> Tuple[int, int]:
    """Largest size with the image's aspect ratio that fits the box."""
    img_w, img_h = image_size
    box_w, box_h = box
    if img_w / img_h > box_w / box_h:
        return box_w, max(1, round(box_w * img_h / img_w))
    return max(1, round(box_h * img_w / img_h)), box_h


def apply_watermark(image: Image.Image, text: str, font_size: int = 96,
                    line_height: int = 144) -> Image.Image:
    """Tile `text` at 45 degrees across the image at 10% opacity."""
    base = image.convert("RGBA")
    width, height = base.size
    diagonal = int(math.ceil(math.hypot(width, height)))

    font = ImageFont.load_default(size=font_size)
    layer = Image.new("RGBA", (diagonal, diagonal), (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    col_spacing = int(draw.textlength(text, font=font)) + 100

    for y in range(-line_height, diagonal + line_height, line_height):
        for x in range(-col_spacing, diagonal + col_spacing, col_spacing):
            draw.text((x, y), text, font=font, fill=(0, 0, 0, 26))

    layer = layer.rotate(45, resample=Image.Resampling.BICUBIC)
    left = (diagonal - width) // 2
    top = (diagonal - height) // 2
    layer = layer.crop((left, top, left + width, top + height))
    return Image.alpha_composite(base, layer).convert("RGB")


class DocumentAssembler:
    """Builds a PDF from an ordered list of image URLs."""

    def __init__(self, config: Optional[ScannerConfig] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.config = config or get_config()
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

    async def _fetch_bytes(self, url: str) -> bytes:
        match = _DATA_URL_RE.match(url)
        if match:
            return base64.b64decode(match.group("data"), validate=False)
        client = await self._get_client()
        response = await client.get(url)
        response.raise_for_status()
        return response.content

    async def load_image(self, url: str) -> Image.Image:
        data = await self._fetch_bytes(url)
        with Image.open(BytesIO(data)) as img:
            img.load()
            return img.convert("RGB")

    def render_page(self, image: Image.Image, options: AssemblyOptions) -> Image.Image:
        """Watermark (if requested), then fit and center the image on a white page."""
        if options.add_watermark:
            image = apply_watermark(image, self.config.watermark_text,
                                    self.config.watermark_font_size,
                                    self.config.watermark_line_height)

        page_w, page_h = page_size_pixels(options.orientation, self.config.pdf_resolution)
        margin = round(self.config.pdf_margin_mm / 25.4 * self.config.pdf_resolution)
        box = (max(1, page_w - 2 * margin), max(1, page_h - 2 * margin))
        target = fit_within(image.size, box)

        page = Image.new("RGB", (page_w, page_h), "white")
        fitted = image.resize(target, Image.Resampling.LANCZOS)
        page.paste(fitted, ((page_w - target[0]) // 2, (page_h - target[1]) // 2))
        return page

    async def assemble(self, image_urls: List[str], options: AssemblyOptions) -> bytes:
        """Return PDF bytes; raises NoImagesError / AssemblyError when nothing renders."""
        if not image_urls:
            raise NoImagesError()

        logger.info(f"Generating PDF with {len(image_urls)} images "
                    f"(orientation={options.orientation}, watermark={options.add_watermark})")

        pages: List[Image.Image] = []
        for i, url in enumerate(image_urls, start=1):
            try:
                image = await self.load_image(url)
                pages.append(self.render_page(image, options))
                logger.debug(f"Processed image {i}/{len(image_urls)}")
            except (httpx.HTTPError, UnidentifiedImageError, Image.DecompressionBombError,
                    OSError, ValueError) as e:
                logger.error(f"Failed to process image {i} ({url}): {e}")
                continue

        if not pages:
            raise AssemblyError(context={"images": len(image_urls)})

        buffer = BytesIO()
        pages[0].save(
            buffer,
            format="PDF",
            save_all=True,
            append_images=pages[1:],
            resolution=self.config.pdf_resolution,
            quality=self.config.jpeg_quality,
            title=options.title or "FlipHTML5 Download",
            producer="FlipHTML5 Downloader",
            creator="flipscan",
        )
        logger.info(f"PDF generation complete: {len(pages)}/{len(image_urls)} pages")
        return buffer.getvalue()

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
