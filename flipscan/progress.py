"""
Progress Channel

Carries progress events from the scan loop to a consumer and stop commands
back. Delivery is best-effort: a lost event only degrades the live preview,
the session's image list stays authoritative and is re-sent as a snapshot when
the run ends.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional

from pydantic import BaseModel

from .data_structures import (
    ImageDiscovered,
    ScanComplete,
    ScanSnapshot,
    ScanStopped,
    StatusChanged,
    StatusCleared,
    progress_event_adapter,
)
from .storage import SAVED_IMAGES, STOP_SCAN, KeyValueStore

logger = logging.getLogger(__name__)

_CLOSED = object()


class StopToken:
    """Cooperative cancellation flag, mirrored into the store's stopScan key."""

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store
        self._requested = False

    @property
    def requested(self) -> bool:
        return self._requested

    async def request_stop(self) -> None:
        self._requested = True
        if self.store is not None:
            await asyncio.to_thread(self.store.set, STOP_SCAN, True)

    async def is_set(self) -> bool:
        if self._requested:
            return True
        if self.store is not None:
            flag = await asyncio.to_thread(self.store.get, STOP_SCAN, False)
            if flag:
                self._requested = True
        return self._requested

    async def clear(self) -> None:
        self._requested = False
        if self.store is not None:
            await asyncio.to_thread(self.store.remove, STOP_SCAN)


class ProgressChannel:
    """Fire-and-forget event relay with an async consumer side."""

    def __init__(self, maxsize: int = 1000, stop_token: Optional[StopToken] = None):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize)
        self._listeners: List[Callable[[BaseModel], Any]] = []
        self.stop_token = stop_token or StopToken()
        self.dropped = 0

    def subscribe(self, listener: Callable[[BaseModel], Any]) -> None:
        self._listeners.append(listener)

    def emit(self, event: BaseModel) -> None:
        """Deliver to listeners and enqueue; never raises, never blocks."""
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Progress listener failed on {event.action}: {e}")
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Progress queue full, dropped {event.action} event ({self.dropped} total)")

    def close(self) -> None:
        """Wake consumers; the sentinel displaces the oldest event if needed."""
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(_CLOSED)

    async def request_stop(self) -> None:
        await self.stop_token.request_stop()

    def __aiter__(self):
        return self

    async def __anext__(self):
        event = await self._queue.get()
        if event is _CLOSED:
            raise StopAsyncIteration
        return event

    @staticmethod
    def to_message(event: BaseModel) -> dict:
        """Wire form of an event."""
        return event.model_dump(mode="json", exclude_none=True)

    @staticmethod
    def from_message(message: dict) -> BaseModel:
        return progress_event_adapter.validate_python(message)


class ProgressReducer:
    """
    Idempotent consumer-side state keyed by image index.

    Redelivered or reordered ImageDiscovered events never insert a URL twice.
    The slots are persisted after every applied change, unfilled positions as
    null, so a reload keeps every index and a late event still lands in place.
    """

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store
        self.slots: List[Optional[str]] = []
        self.status_text = ""
        self.complete = False
        self.stopped = False
        if store is not None:
            saved = store.get(SAVED_IMAGES) or []
            self.slots = list(saved)

    @property
    def images(self) -> List[str]:
        return [url for url in self.slots if url]

    def _persist(self) -> None:
        if self.store is not None:
            self.store.set(SAVED_IMAGES, self.slots)

    def apply(self, event: BaseModel) -> bool:
        """Fold one event into the state; returns whether the image list changed."""
        if isinstance(event, ImageDiscovered):
            if event.url in self.slots:
                return False
            if event.index >= len(self.slots):
                self.slots.extend([None] * (event.index + 1 - len(self.slots)))
            if self.slots[event.index] is not None:
                logger.warning(f"Index {event.index} already holds {self.slots[event.index]}, "
                               f"ignoring {event.url}")
                return False
            self.slots[event.index] = event.url
            self._persist()
            return True

        if isinstance(event, ScanSnapshot):
            changed = self.slots != event.images
            self.slots = list(event.images)
            if changed:
                self._persist()
            return changed

        if isinstance(event, StatusChanged):
            self.status_text = event.describe()
            self.complete = False
            self.stopped = False
        elif isinstance(event, StatusCleared):
            self.status_text = ""
        elif isinstance(event, ScanComplete):
            self.status_text = ""
            self.complete = True
        elif isinstance(event, ScanStopped):
            self.status_text = ""
            self.stopped = True
        return False

    __call__ = apply

    def clear(self) -> None:
        self.slots = []
        self.status_text = ""
        self.complete = False
        self.stopped = False
        if self.store is not None:
            self.store.remove(SAVED_IMAGES)
