"""Custom exceptions for the flipbook scanner."""


class FlipscanError(Exception):
    """Base exception for the flipbook scanner."""

    def __init__(self, message: str, code: str = "INTERNAL_ERROR", context: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context or {}


class ValidationError(FlipscanError):
    """Invalid message or option."""

    def __init__(self, message: str, context: dict = None):
        super().__init__(message, "VALIDATION_ERROR", context)


class ScanStateError(FlipscanError):
    """Operation not allowed in the current scan state."""

    def __init__(self, message: str = "Scan already in progress", context: dict = None):
        super().__init__(message, "SCAN_STATE_ERROR", context)


class ViewerNotReadyError(FlipscanError):
    """The viewer's advance control never became visible."""

    def __init__(self, message: str = "Viewer did not become ready", context: dict = None):
        super().__init__(message, "VIEWER_NOT_READY", context)


class TotalPagesUnknownError(FlipscanError):
    """Raised before scanning when a click viewer exposes no page count."""

    def __init__(self, message: str = "Cannot detect total pages", context: dict = None):
        super().__init__(message, "TOTAL_PAGES_UNKNOWN", context)


class ContentNotDetectedError(FlipscanError):
    """Repeated empty extraction at the start of a scan."""

    def __init__(self, message: str = "Cannot detect content", context: dict = None):
        super().__init__(message, "CONTENT_NOT_DETECTED", context)


class NoImagesError(FlipscanError):
    """Nothing to assemble."""

    def __init__(self, message: str = "No images to download", context: dict = None):
        super().__init__(message, "NO_IMAGES", context)


class AssemblyError(FlipscanError):
    """Document assembly produced no page at all."""

    def __init__(self, message: str = "PDF generation failed", context: dict = None):
        super().__init__(message, "ASSEMBLY_ERROR", context)


class StorageError(FlipscanError):
    """Key-value store failure."""

    def __init__(self, message: str, context: dict = None):
        super().__init__(message, "STORAGE_ERROR", context)
