"""
Exception types raised inside the monitor.

None of these are fatal to the daemon. Each one is caught at the
boundary of the job or request that raised it and turned into a log
line (and, for ingestion, an HTTP status).
"""


class MonitorError(Exception):
    """Base class for all monitor errors."""


class IngestParseError(MonitorError):
    """POST body could not be parsed as JSON."""

    status = 400


class StorageError(MonitorError):
    """Reading or writing a segment file failed."""

    status = 500


class UploadTransportError(MonitorError):
    """Network failure or non-2xx reply from the collector."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class UploadContentError(MonitorError):
    """Segment file is corrupt or not a JSON array."""


class FreshnessQueryError(MonitorError):
    """Freshness query failed or returned a malformed payload."""


class DiagnosticsError(MonitorError):
    """IP lookup, connection probe or speed test failed."""


class SupervisorBusyError(MonitorError):
    """A browser lifecycle operation is already in flight."""

    def __init__(self, operation: str, current: str = None):
        message = f"Cannot {operation}: browser operation already in progress"
        if current:
            message += f" ({current})"
        super().__init__(message)
        self.operation = operation
        self.current = current
