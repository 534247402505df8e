"""
Error taxonomy for stream resolution and proxying.

Provider adapters raise these internally and convert them to failed
StreamResults at their boundary; the proxy and routers let them reach the
FastAPI exception handler, which renders ``{"success": false, "error": ...}``.
"""
from typing import Any, Optional

from livetv.models.stream import ErrorKind


class LiveTVError(Exception):
    """Base class for all expected failures."""

    status_code: int = 500
    kind: Optional[ErrorKind] = None

    def __init__(self, message: str, *, status_code: Optional[int] = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, **self.extra}


class BadRequestError(LiveTVError):
    status_code = 400
    kind = ErrorKind.BAD_REQUEST


class NotFoundError(LiveTVError):
    status_code = 404
    kind = ErrorKind.NOT_FOUND


class OfflineEventError(LiveTVError):
    """The page explicitly says the event is not live. Not worth retrying."""

    status_code = 404
    kind = ErrorKind.OFFLINE_EVENT


class UpstreamUnavailableError(LiveTVError):
    status_code = 502
    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class ExtractionFailedError(LiveTVError):
    status_code = 502
    kind = ErrorKind.EXTRACTION_FAILED


class ProxyUpstreamError(LiveTVError):
    status_code = 502
    kind = ErrorKind.PROXY_UPSTREAM_ERROR
