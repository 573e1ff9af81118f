"""Custom exceptions for the recast engine.

Every fatal failure inside a job is raised as a ``RecastError`` subclass and
ends up as the job's ``error_message``. Missing decorative assets are not
errors and never raise.
"""

from typing import Any

from recast.constants.error_codes import get_error_spec


class RecastError(Exception):
    """Base exception for all recast errors."""

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return get_error_spec(self.code).get("retryable", False)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


# =============================================================================
# Input Errors
# =============================================================================


class InputError(RecastError):
    """Malformed request payload."""

    code = "INVALID_INPUT"
    message = "Invalid input"


class ProbeError(RecastError):
    """The source video could not be probed."""

    code = "PROBE_FAILED"
    message = "Failed to read video metadata"

    def __init__(self, message: str | None = None, *, path: str | None = None):
        self.path = path
        if message is None and path:
            message = f"Failed to read video metadata: {path}"
        super().__init__(message)


class JobNotFoundError(RecastError):
    """No job exists for the recording."""

    code = "JOB_NOT_FOUND"
    message = "Job not found"

    def __init__(self, recording_id: str | None = None):
        message = f"Job not found: {recording_id}" if recording_id else self.message
        super().__init__(message)


# =============================================================================
# Processing Errors
# =============================================================================


class TranscodeError(RecastError):
    """Decoder/encoder subprocess failure."""

    code = "TRANSCODE_FAILED"
    message = "Transcode failed"

    def __init__(self, message: str | None = None, *, stderr: str = ""):
        self.stderr = stderr
        if stderr:
            message = f"{message or self.message}: {stderr.strip()[-500:]}"
        super().__init__(message)


class FrameCompositingError(RecastError):
    """A frame could not be composited."""

    code = "FRAME_COMPOSITING_FAILED"
    message = "Frame compositing failed"

    def __init__(self, message: str | None = None, *, frame_index: int | None = None):
        self.frame_index = frame_index
        if frame_index is not None:
            message = f"{message or self.message} (frame {frame_index})"
        super().__init__(message)


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(RecastError):
    """Download or upload failure."""

    code = "STORAGE_ERROR"
    message = "Storage operation failed"
