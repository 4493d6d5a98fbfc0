"""
Scan Loop

Drives a navigation driver and the page extractor across a bounded page range,
deduplicates and validates what it finds, and streams progress events. One
coroutine per session; iterations never overlap and every advance is followed
by the configured delay before the DOM is read again.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Tuple

from .config import ScannerConfig, get_config
from .data_structures import (
    ImageDiscovered,
    ImageNode,
    ScanComplete,
    ScanSession,
    ScanSnapshot,
    ScanStatus,
    ScanStopped,
    StatusChanged,
    StatusCleared,
    ViewerKind,
)
from .errors import (
    ContentNotDetectedError,
    FlipscanError,
    ScanStateError,
    TotalPagesUnknownError,
    ViewerNotReadyError,
)
from .extractor import read_page_images
from .logger import get_logger, log_error
from .navigator import NavigationDriver
from .progress import ProgressChannel
from .validator import ImageValidator

Entries = List[Tuple[str, ImageNode]]


class Scanner:
    """Incremental page-scanning engine for one viewer page."""

    def __init__(self, dom, driver: NavigationDriver, validator: ImageValidator,
                 channel: ProgressChannel, config: Optional[ScannerConfig] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.dom = dom
        self.driver = driver
        self.validator = validator
        self.channel = channel
        self.config = config or get_config()
        self._sleep = sleep

    async def start(self, session: ScanSession) -> ScanSession:
        """Scan a fresh session until it completes, stops or pauses."""
        if session.status != ScanStatus.IDLE:
            raise ScanStateError(f"Cannot start a {session.status.value} session",
                                 {"session_id": session.session_id})
        return await self._run(session)

    async def resume(self, session: ScanSession) -> ScanSession:
        """Continue a paused or stopped session from len(images)."""
        if not session.is_resumable:
            raise ScanStateError(f"Cannot continue a {session.status.value} session",
                                 {"session_id": session.session_id})
        return await self._run(session)

    async def _run(self, session: ScanSession) -> ScanSession:
        log = get_logger(__name__, session_id=session.session_id, viewer=session.viewer_kind.value)
        session.begin()
        log.info("scan started", images=len(session.images), scan_speed_ms=session.scan_speed_ms)
        self.channel.emit(StatusChanged(text="Scanning…"))

        status = ScanStatus.STOPPED
        try:
            if not await self.driver.wait_until_ready():
                raise ViewerNotReadyError(context={"session_id": session.session_id})

            if session.viewer_kind == ViewerKind.HASH_NAV:
                status = await self._scan_hash_nav(session, log)
            else:
                status = await self._scan_click_nav(session, log)
        except FlipscanError as e:
            log_error(log, "scan failed", e, code=e.code, page=session.current_page)
            raise
        finally:
            session.freeze(status)
            await self._finish(session, log)
        return session

    async def _finish(self, session: ScanSession, log) -> None:
        self.channel.emit(ScanSnapshot(images=session.snapshot()))
        if session.status == ScanStatus.COMPLETE:
            self.channel.emit(ScanComplete())
        else:
            self.channel.emit(ScanStopped())
        self.channel.emit(StatusCleared())
        await self.channel.stop_token.clear()
        log.info("scan finished", status=session.status.value, images=len(session.images),
                 current_page=session.current_page, total_pages=session.total_pages)

    async def _wait(self, session: ScanSession) -> None:
        await self._sleep(session.scan_speed_ms / 1000.0)

    async def _collect(self, session: ScanSession, entries: Entries, log) -> int:
        """Validate and append unseen images, emitting one event per new image."""
        added = 0
        for url, node in entries:
            if url in session.seen_urls:
                continue
            if not await self.validator.is_acceptable(node, url):
                log.info("skipping low-res image", url=url, min_width=self.validator.min_width)
                continue
            index = session.add_image(url)
            if index is not None:
                self.channel.emit(ImageDiscovered(index=index, url=url))
                added += 1
        return added

    def _check_empty(self, session: ScanSession, entries: Entries, empty_steps: int, log) -> int:
        """Count empty steps before anything was collected; give up past the threshold."""
        if entries or session.images:
            return 0
        empty_steps += 1
        log.warning("no images found", page=session.current_page, empty_steps=empty_steps)
        if empty_steps >= self.config.empty_start_threshold:
            raise ContentNotDetectedError(context={"session_id": session.session_id,
                                                   "page": session.current_page})
        return empty_steps

    async def _scan_hash_nav(self, session: ScanSession, log) -> ScanStatus:
        """
        Jump page by page through the fragment until the extracted set stops
        changing for repeat_threshold consecutive steps.
        """
        max_pages = self.config.max_pages
        threshold = self.config.repeat_threshold
        page = len(session.images) + 1
        last_set: Optional[List[str]] = None
        repeats = 0
        empty_steps = 0

        while True:
            if await self.channel.stop_token.is_set():
                log.info("scan stopped by user", page=page)
                return ScanStatus.STOPPED
            if page > max_pages:
                log.info("page ceiling reached", max_pages=max_pages)
                return ScanStatus.COMPLETE

            self.channel.emit(StatusChanged(page=page))
            await self.driver.advance(page)
            session.advance_cursor(page, max_pages)
            await self._wait(session)

            entries = await read_page_images(self.dom, session.viewer_kind, self.config)
            current_set = [url for url, _ in entries]
            empty_steps = self._check_empty(session, entries, empty_steps, log)
            if empty_steps:
                page += 1
                continue

            await self._collect(session, entries, log)

            if current_set == last_set:
                repeats += 1
                log.debug("repeated image set", repeats=repeats, threshold=threshold)
                if repeats >= threshold:
                    return ScanStatus.COMPLETE
            else:
                repeats = 0
            last_set = current_set
            page += 1

    async def _scan_click_nav(self, session: ScanSession, log) -> ScanStatus:
        """Extract, click next, wait; until the known page total is collected."""
        max_pages = self.config.max_pages

        # re-read on every run so a count that loaded late is picked up
        total = await self.driver.total_page_count()
        if total:
            session.total_pages = total
        if not session.total_pages:
            raise TotalPagesUnknownError(context={"session_id": session.session_id})
        log.info("total pages detected", total_pages=session.total_pages)

        if session.current_page == 0:
            session.advance_cursor(1, max_pages)
        empty_steps = 0

        while True:
            if await self.channel.stop_token.is_set():
                log.info("scan stopped by user", page=session.current_page)
                return ScanStatus.STOPPED

            self.channel.emit(StatusChanged(page=session.current_page))
            entries = await read_page_images(self.dom, session.viewer_kind, self.config)
            empty_steps = self._check_empty(session, entries, empty_steps, log)
            await self._collect(session, entries, log)

            if len(session.images) >= session.total_pages:
                return ScanStatus.COMPLETE
            if session.current_page >= max_pages:
                log.info("page ceiling reached", max_pages=max_pages)
                return ScanStatus.COMPLETE

            next_page = session.current_page + 1
            if not await self.driver.advance(next_page):
                log.info("next-page control unreachable, pausing", page=session.current_page)
                return ScanStatus.PAUSED
            session.advance_cursor(next_page, max_pages)
            await self._wait(session)
