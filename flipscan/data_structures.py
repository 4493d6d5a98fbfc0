"""
Data Structures for the Flipbook Scanner

Pydantic models for scan sessions, DOM snapshots, progress events and the
action-tagged messages exchanged with the consuming UI.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Set, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from .errors import ScanStateError


class ScanStatus(str, Enum):
    """Lifecycle status of a scan session."""
    IDLE = "idle"
    SCANNING = "scanning"
    PAUSED = "paused"
    COMPLETE = "complete"
    STOPPED = "stopped"


class ViewerKind(str, Enum):
    """Supported flipbook viewer families."""
    HASH_NAV = "hash_nav"
    CLICK_NAV = "click_nav"


class PageSide(str, Enum):
    """Side of a spread an image is rendered on."""
    LEFT = "left"
    RIGHT = "right"
    SINGLE = "single"


class ImageNode(BaseModel):
    """Snapshot of one page-image element read from the viewer DOM."""
    src: str = Field(default="", description="Raw src attribute")
    complete: bool = Field(default=False, description="Element finished loading")
    natural_width: int = Field(default=0, description="Rendered natural width in pixels")
    side: PageSide = Field(default=PageSide.SINGLE)
    z_index: int = Field(default=0, description="Computed z-index of the page layer")
    active: bool = Field(default=False, description="Element carries the viewer's active marker")

    @property
    def has_loaded_width(self) -> bool:
        return self.complete and self.natural_width > 0


class ScanSession(BaseModel):
    """Aggregate state of one scan run."""
    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    viewer_kind: ViewerKind
    base_url: str = Field(..., description="Flipbook base URL used to resolve relative sources")
    images: List[str] = Field(default_factory=list)
    seen_urls: Set[str] = Field(default_factory=set)
    current_page: int = Field(default=0, ge=0)
    total_pages: int = Field(default=0, ge=0, description="0 when the viewer exposes no count")
    status: ScanStatus = Field(default=ScanStatus.IDLE)
    scan_speed_ms: int = Field(default=1000)
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_frozen(self) -> bool:
        return self.status in (ScanStatus.PAUSED, ScanStatus.COMPLETE, ScanStatus.STOPPED)

    @property
    def is_resumable(self) -> bool:
        return self.status in (ScanStatus.PAUSED, ScanStatus.STOPPED)

    def add_image(self, url: str) -> Optional[int]:
        """Append an unseen URL and return its index, or None for a duplicate."""
        if self.status != ScanStatus.SCANNING:
            raise ScanStateError(
                f"Cannot add images while session is {self.status.value}",
                {"session_id": self.session_id},
            )
        if url in self.seen_urls:
            return None
        self.seen_urls.add(url)
        self.images.append(url)
        return len(self.images) - 1

    def advance_cursor(self, page: int, max_pages: int) -> None:
        """Move the page cursor forward, never backwards and never past the ceiling."""
        self.current_page = min(max(self.current_page, page), max_pages)

    def begin(self) -> None:
        if self.status == ScanStatus.SCANNING:
            raise ScanStateError(context={"session_id": self.session_id})
        if self.status == ScanStatus.COMPLETE:
            raise ScanStateError("Scan already complete", {"session_id": self.session_id})
        self.status = ScanStatus.SCANNING

    def freeze(self, status: ScanStatus) -> None:
        if status not in (ScanStatus.PAUSED, ScanStatus.COMPLETE, ScanStatus.STOPPED):
            raise ValueError(f"{status.value} is not a frozen status")
        self.status = status

    def snapshot(self) -> List[str]:
        return list(self.images)


class UserState(BaseModel):
    """Subscription metadata persisted by the UI."""
    is_paid: bool = Field(default=False, alias="isPaid")
    subscription_type: Literal["free", "monthly", "yearly"] = Field(default="free", alias="subscriptionType")

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Progress events (scanner -> UI)
# ---------------------------------------------------------------------------

class StatusChanged(BaseModel):
    """Human-readable scanning status or the page being scanned."""
    action: Literal["scanningStatus"] = "scanningStatus"
    text: Optional[str] = None
    page: Optional[int] = None

    def describe(self) -> str:
        if self.page:
            return f"Scanning page {self.page}…"
        return self.text or "Scanning…"


class ImageDiscovered(BaseModel):
    """Exactly one new unique image at its final position."""
    action: Literal["pageImage"] = "pageImage"
    index: int = Field(..., ge=0)
    url: str


class ScanComplete(BaseModel):
    action: Literal["scanComplete"] = "scanComplete"


class ScanStopped(BaseModel):
    action: Literal["scanStopped"] = "scanStopped"


class StatusCleared(BaseModel):
    action: Literal["removeScanningStatus"] = "removeScanningStatus"


class ScanSnapshot(BaseModel):
    """Authoritative image list, sent when a run ends."""
    action: Literal["scanSnapshot"] = "scanSnapshot"
    images: List[str] = Field(default_factory=list)


ProgressEvent = Annotated[
    Union[StatusChanged, ImageDiscovered, ScanComplete, ScanStopped, StatusCleared, ScanSnapshot],
    Field(discriminator="action"),
]

progress_event_adapter = TypeAdapter(ProgressEvent)


# ---------------------------------------------------------------------------
# Command messages (UI -> service)
# ---------------------------------------------------------------------------

class _Request(BaseModel):
    model_config = {"populate_by_name": True}


class StartScanRequest(_Request):
    action: Literal["startScan"] = "startScan"
    scan_speed: Optional[int] = Field(default=None, alias="scanSpeed")

    @field_validator('scan_speed')
    @classmethod
    def validate_scan_speed(cls, v):
        if v is not None and v <= 0:
            raise ValueError('scanSpeed must be positive')
        return v


class ShowScanDialogRequest(StartScanRequest):
    action: Literal["showScanDialog"] = "showScanDialog"


class ContinueScanRequest(_Request):
    action: Literal["continueScan"] = "continueScan"


class StopScanRequest(_Request):
    action: Literal["stopScan"] = "stopScan"


class GetScanStatusRequest(_Request):
    action: Literal["getScanStatus"] = "getScanStatus"


class ClearImagesRequest(_Request):
    action: Literal["clearImages"] = "clearImages"


class DownloadPdfRequest(_Request):
    action: Literal["downloadPdf"] = "downloadPdf"
    orientation: Literal["portrait", "landscape", "square"] = "portrait"
    title: Optional[str] = None


ScanRequest = Annotated[
    Union[
        StartScanRequest,
        ShowScanDialogRequest,
        ContinueScanRequest,
        StopScanRequest,
        GetScanStatusRequest,
        ClearImagesRequest,
        DownloadPdfRequest,
    ],
    Field(discriminator="action"),
]

scan_request_adapter = TypeAdapter(ScanRequest)
