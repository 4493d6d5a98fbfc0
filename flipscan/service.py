"""
Scan Service

Message front-end for one viewer page. Accepts the action-tagged messages the
UI sends (startScan, continueScan, stopScan, showScanDialog, getScanStatus,
clearImages, downloadPdf) and answers with plain dicts. A FlipscanError raised
anywhere below becomes an {"error": message} response.
"""

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from .assembler import AssemblyOptions, DocumentAssembler, default_filename
from .config import ScannerConfig, get_config
from .data_structures import (
    ClearImagesRequest,
    ContinueScanRequest,
    DownloadPdfRequest,
    GetScanStatusRequest,
    ScanSession,
    ScanStatus,
    ShowScanDialogRequest,
    StartScanRequest,
    StopScanRequest,
    UserState,
    scan_request_adapter,
)
from .errors import FlipscanError, ScanStateError, ValidationError
from .extractor import flipbook_base_url
from .navigator import create_driver, detect_viewer_kind
from .progress import ProgressChannel, ProgressReducer, StopToken
from .scanner import Scanner
from .storage import (
    IS_PRO_VERSION,
    REFRESH_PAGE_ON_SCAN,
    SAVED_IMAGES,
    SCAN_SPEED,
    USER_STATE,
    KeyValueStore,
    MemoryStore,
)
from .validator import ImageValidator

logger = logging.getLogger(__name__)


class ScanService:
    """Owns the current session of one viewer page and serves UI messages."""

    def __init__(self, dom, store: Optional[KeyValueStore] = None,
                 config: Optional[ScannerConfig] = None,
                 validator: Optional[ImageValidator] = None,
                 assembler: Optional[DocumentAssembler] = None,
                 refresh: Optional[Callable[[], Awaitable[None]]] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.dom = dom
        self.config = config or get_config()
        self.store = store if store is not None else MemoryStore()
        self.validator = validator or ImageValidator(self.config)
        self.assembler = assembler or DocumentAssembler(self.config)
        self.channel = ProgressChannel(self.config.progress_queue_size, StopToken(self.store))
        self.reducer = ProgressReducer(self.store)
        self.channel.subscribe(self.reducer)
        self.session: Optional[ScanSession] = None
        self._refresh = refresh
        self._sleep = sleep
        self._lock = asyncio.Lock()

    @property
    def is_scanning(self) -> bool:
        return self._lock.locked()

    async def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch one message; never raises for expected failures."""
        try:
            try:
                request = scan_request_adapter.validate_python(message)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid message: {e.errors()[0]['msg']}",
                                      {"message": message}) from e

            # ShowScanDialogRequest subclasses StartScanRequest
            if isinstance(request, ShowScanDialogRequest):
                return self.show_scan_dialog(request.scan_speed)
            if isinstance(request, StartScanRequest):
                return await self.start_scan(request.scan_speed)
            if isinstance(request, ContinueScanRequest):
                return await self.continue_scan()
            if isinstance(request, StopScanRequest):
                return await self.stop_scan()
            if isinstance(request, GetScanStatusRequest):
                return self.get_scan_status()
            if isinstance(request, ClearImagesRequest):
                return self.clear_images()
            if isinstance(request, DownloadPdfRequest):
                return await self.download_pdf(request.orientation, request.title)
            raise ValidationError(f"Unhandled action: {request.action}")
        except FlipscanError as e:
            logger.warning(f"Request failed [{e.code}]: {e.message}")
            return {"error": e.message}

    def _scan_speed(self, requested: Optional[int]) -> int:
        speed = requested or self.store.get(SCAN_SPEED) or self.config.scan_speed_ms
        self.store.set(SCAN_SPEED, speed)
        return speed

    def _scanner(self, session: ScanSession) -> Scanner:
        driver = create_driver(session.viewer_kind, self.dom, self.config)
        return Scanner(self.dom, driver, self.validator, self.channel, self.config, sleep=self._sleep)

    async def start_scan(self, scan_speed: Optional[int] = None) -> Dict[str, Any]:
        """Start a fresh session on the current page and scan it to the end."""
        if self.is_scanning:
            raise ScanStateError()
        async with self._lock:
            speed = self._scan_speed(scan_speed)
            await self.channel.stop_token.clear()

            if self.store.get(REFRESH_PAGE_ON_SCAN, self.config.refresh_page_on_scan) and self._refresh:
                logger.info("Refreshing viewer before scanning")
                await self._refresh()

            location = await self.dom.location()
            session = ScanSession(
                viewer_kind=detect_viewer_kind(location),
                base_url=flipbook_base_url(location),
                scan_speed_ms=speed,
            )
            self.reducer.clear()
            self.session = session
            logger.info(f"Starting {session.viewer_kind.value} scan of {location} at {speed}ms")

            await self._scanner(session).start(session)
            return {"images": session.snapshot(), "status": session.status.value}

    async def continue_scan(self) -> Dict[str, Any]:
        """Resume the stopped or paused session from len(images)."""
        if self.is_scanning:
            raise ScanStateError()
        async with self._lock:
            session = self.session
            if session is None:
                session = await self._restored_session()
            if session is None:
                raise ScanStateError("No scan to continue")
            self.session = session
            await self.channel.stop_token.clear()
            logger.info(f"Continuing scan from {len(session.images)} images")

            await self._scanner(session).resume(session)
            return {"images": session.snapshot(), "status": session.status.value}

    async def _restored_session(self) -> Optional[ScanSession]:
        """Rebuild a stopped session from the persisted image list."""
        # a gap means later pages arrived out of order; resume before it
        saved = list(itertools.takewhile(bool, self.store.get(SAVED_IMAGES) or []))
        if not saved:
            return None
        location = await self.dom.location()
        logger.info(f"Restoring session from {len(saved)} saved images")
        return ScanSession(
            viewer_kind=detect_viewer_kind(location),
            base_url=flipbook_base_url(location),
            images=list(saved),
            seen_urls=set(saved),
            current_page=min(len(saved), self.config.max_pages),
            status=ScanStatus.STOPPED,
            scan_speed_ms=self._scan_speed(None),
        )

    async def stop_scan(self) -> Dict[str, Any]:
        await self.channel.request_stop()
        logger.info("Stop requested")
        return {"success": True}

    def show_scan_dialog(self, scan_speed: Optional[int] = None) -> Dict[str, Any]:
        """Remember the speed chosen in the scan dialog."""
        return {"success": True, "scanSpeed": self._scan_speed(scan_speed)}

    def get_scan_status(self) -> Dict[str, Any]:
        session = self.session
        return {
            "isScanning": self.is_scanning,
            "shouldStop": self.channel.stop_token.requested,
            "status": session.status.value if session else ScanStatus.IDLE.value,
            "currentPage": session.current_page if session else 0,
            "totalPages": session.total_pages if session else 0,
            "images": session.snapshot() if session else self.reducer.images,
        }

    def clear_images(self) -> Dict[str, Any]:
        if self.is_scanning:
            raise ScanStateError("Cannot clear images while scanning")
        self.session = None
        self.reducer.clear()
        logger.info("Cleared scanned images")
        return {"success": True}

    def watermark_required(self) -> bool:
        """Free tier gets watermarked documents."""
        if self.store.get(IS_PRO_VERSION, False):
            return False
        user_state = UserState.model_validate(self.store.get(USER_STATE) or {})
        return not user_state.is_paid

    async def download_pdf(self, orientation: str = "portrait",
                           title: Optional[str] = None) -> Dict[str, Any]:
        """Assemble the collected images; the PDF bytes are returned in the response."""
        images = self.session.snapshot() if self.session else self.reducer.images
        options = AssemblyOptions(orientation=orientation,
                                  add_watermark=self.watermark_required(),
                                  title=title)
        pdf = await self.assembler.assemble(images, options)
        return {"success": True, "filename": default_filename(), "pdf": pdf}

    async def close(self):
        await self.validator.close()
        await self.assembler.close()
