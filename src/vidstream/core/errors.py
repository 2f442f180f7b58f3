"""Error kinds raised by the delivery core.

Every error carries the machine-readable kind code and the HTTP status it maps
to, so the API layer can render them uniformly.
"""

from typing import Optional


class VidstreamError(Exception):
    """Base class for request-scoped delivery errors."""

    kind = "INTERNAL_ERROR"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        """Build the error response body."""
        return {"error": self.kind, "message": self.message, "statusCode": self.status_code}


class InvalidName(VidstreamError):
    """Filename is empty, malformed, or escapes the media root."""

    kind = "BAD_REQUEST"
    status_code = 400
    default_message = "Invalid filename"


class NotFound(VidstreamError):
    """Resolved path is missing or not a regular file."""

    kind = "NOT_FOUND"
    status_code = 404
    default_message = "File not found"


class Unsatisfiable(VidstreamError):
    """Range header cannot be satisfied for the file size."""

    kind = "RANGE_NOT_SATISFIABLE"
    status_code = 416
    default_message = "Requested range not satisfiable"

    def __init__(self, size: int, message: Optional[str] = None):
        self.size = size
        super().__init__(message)


class ProbeFailure(VidstreamError):
    """ffprobe could not be launched, exited non-zero, or produced bad output."""

    default_message = "Failed to probe file"

    def __init__(
        self,
        reason: str,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
    ):
        self.reason = reason
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"Failed to probe file: {reason}")


class StreamFailure(VidstreamError):
    """Transfer or transcode failed.

    Only surfaces as a response when raised before headers are sent.
    """

    default_message = "Failed to stream file"

    def __init__(self, message: Optional[str] = None, stderr: Optional[str] = None):
        self.stderr = stderr
        super().__init__(message)


class ServiceBusy(VidstreamError):
    """Transcode admission limit is exhausted."""

    kind = "SERVICE_BUSY"
    status_code = 503
    default_message = "Too many concurrent transcodes"
