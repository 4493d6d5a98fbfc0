"""
Configuration Management for the Flipbook Scanner

Handles environment variable loading and provides centralized configuration
for the scan engine, browser session, key-value store and PDF assembler.
"""

import logging
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Singleton pattern per process
_config_instance = None


class ScannerConfig(BaseSettings):
    """Configuration for the flipbook scanner."""

    # Environment
    environment: str = "development"
    log_level: str = "info"

    # Key-value store (None keeps everything in process memory)
    redis_url: Optional[str] = None
    redis_key_prefix: str = "flipscan:"

    # Scan limits
    max_pages: int = 500  # Hard ceiling on the page cursor
    scan_speed_ms: int = 1000  # Inter-page delay; too short reads a stale DOM
    repeat_threshold: int = 3  # Identical consecutive steps before a hash scan completes
    empty_start_threshold: int = 5  # Empty steps with nothing collected before giving up

    # Image validation
    min_image_width: int = 550
    image_fetch_timeout: float = 2.0

    # Navigation readiness
    ready_poll_interval: float = 0.1
    ready_max_wait: Optional[float] = None  # None polls until the viewer is ready

    # Hash-navigation viewers (fliphtml5 style)
    hash_page_image_selector: str = "div.side-image img"
    hash_ready_selector: str = "div.side-image"
    hash_fragment_template: str = "#p={page}"

    # Click-navigation viewers
    # Placeholders; a site-specific .env must point these at the real viewer markup
    click_page_image_selector: str = "div.page-spread img.page-image"
    click_next_button_xpath: str = "//div[contains(@class, 'flip_button_right')]"
    click_page_indicator_xpath: str = "//input[contains(@class, 'pageNumberInput')]"

    # Browser
    headless: bool = True
    viewport_width: int = 1920
    viewport_height: int = 1080
    user_agent: str = 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
    navigation_timeout: float = 60.0
    refresh_page_on_scan: bool = True
    redirect_wait: float = 4.0  # Wait after rewriting a landing URL to its reader URL
    reload_wait: float = 3.0

    # HTTP
    http_timeout: float = 30.0

    # Progress channel
    progress_queue_size: int = 1000

    # PDF assembly
    pdf_resolution: float = 144.0
    pdf_margin_mm: float = 0.0
    jpeg_quality: int = 92
    watermark_text: str = 'Source: FlipHTML5 | Non-Commercial Authorization | Redistribution and Resale Are Strictly Prohibited'
    watermark_font_size: int = 96
    watermark_line_height: int = 144

    model_config = {
        "env_file": ".env",
        "env_prefix": "FLIPSCAN_",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ['debug', 'info', 'warning', 'error', 'critical']
        if v.lower() not in allowed:
            raise ValueError(f'Log level must be one of {allowed}')
        return v.lower()

    @field_validator('redis_url')
    @classmethod
    def validate_redis_url(cls, v):
        """Validate Redis URL."""
        if v is not None and not v.startswith(('redis://', 'rediss://', 'unix://')):
            raise ValueError('Redis URL must start with redis://, rediss:// or unix://')
        return v

    @field_validator('max_pages')
    @classmethod
    def validate_max_pages(cls, v):
        """Validate page ceiling."""
        if v < 1:
            raise ValueError('Max pages must be positive')
        return v

    @field_validator('scan_speed_ms')
    @classmethod
    def validate_scan_speed(cls, v):
        """Validate inter-page delay."""
        if v < 100 or v > 10000:
            raise ValueError('Scan speed must be between 100 and 10000 ms')
        return v

    @field_validator('repeat_threshold', 'empty_start_threshold')
    @classmethod
    def validate_thresholds(cls, v):
        """Validate termination thresholds."""
        if v < 1:
            raise ValueError('Thresholds must be at least 1')
        return v

    @field_validator('ready_max_wait')
    @classmethod
    def validate_ready_max_wait(cls, v):
        """Validate readiness bound."""
        if v is not None and v <= 0:
            raise ValueError('Ready max wait must be positive or unset')
        return v

    @field_validator('jpeg_quality')
    @classmethod
    def validate_jpeg_quality(cls, v):
        """Validate JPEG quality."""
        if not 1 <= v <= 95:
            raise ValueError('JPEG quality must be between 1 and 95')
        return v

    def log_configuration(self):
        """Log current configuration."""
        logger.info("=== Flipbook Scanner Configuration ===")
        logger.info(f"Environment: {self.environment}")
        logger.info(f"Log Level: {self.log_level}")
        logger.info(f"Store: {'redis' if self.redis_url else 'memory'}")
        logger.info(f"Max Pages: {self.max_pages}")
        logger.info(f"Scan Speed: {self.scan_speed_ms}ms")
        logger.info(f"Repeat Threshold: {self.repeat_threshold}")
        logger.info(f"Min Image Width: {self.min_image_width}px")
        logger.info(f"Image Fetch Timeout: {self.image_fetch_timeout}s")
        logger.info(f"Ready Max Wait: {self.ready_max_wait if self.ready_max_wait else 'unbounded'}")
        logger.info(f"Headless: {self.headless}")
        logger.info(f"Refresh Page On Scan: {self.refresh_page_on_scan}")
        logger.info(f"PDF Resolution: {self.pdf_resolution}dpi")
        logger.info("======================================")


def get_config() -> ScannerConfig:
    """Get singleton config instance."""
    global _config_instance
    if _config_instance is None:
        _config_instance = ScannerConfig()
    return _config_instance


def reload_config() -> ScannerConfig:
    """Reload configuration from environment."""
    global _config_instance
    _config_instance = None
    return get_config()
