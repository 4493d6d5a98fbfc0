"""
Flipbook Scanner

Collects the page images of FlipHTML5-style flipbook viewers and assembles
them into a PDF.
"""

from .config import ScannerConfig, get_config
from .data_structures import ScanSession, ScanStatus, ViewerKind
from .errors import FlipscanError
from .scanner import Scanner
from .service import ScanService

__version__ = "0.1.0"

__all__ = [
    "ScannerConfig",
    "get_config",
    "ScanSession",
    "ScanStatus",
    "ViewerKind",
    "FlipscanError",
    "Scanner",
    "ScanService",
]
