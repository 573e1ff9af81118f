"""Error codes for the recording post-processing engine.

Single source of truth for every error code and whether a caller may
resubmit the same job and reasonably expect a different outcome. The engine
itself never retries; the flag is informational for the orchestration layer.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    description: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Input errors (not retryable without a corrected payload)
    # ==========================================================================
    "INVALID_INPUT": {
        "retryable": False,
        "description": "Cursor samples, zoom windows or request fields are malformed",
    },
    "PROBE_FAILED": {
        "retryable": False,
        "description": "Source video could not be read by ffprobe",
    },
    "JOB_NOT_FOUND": {
        "retryable": False,
        "description": "No job has been submitted for this recording",
    },
    # ==========================================================================
    # Processing errors
    # ==========================================================================
    "TRANSCODE_FAILED": {
        "retryable": True,
        "description": "Decoder or encoder process failed or timed out",
    },
    "FRAME_COMPOSITING_FAILED": {
        "retryable": False,
        "description": "A frame could not be composited",
    },
    # ==========================================================================
    # Storage errors (transient network failures are common)
    # ==========================================================================
    "STORAGE_ERROR": {
        "retryable": True,
        "description": "Download of the source or upload of the result failed",
    },
    "INTERNAL_ERROR": {
        "retryable": False,
        "description": "Unexpected error",
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and description
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    """Check whether resubmitting after this error code can succeed."""
    spec = get_error_spec(code)
    return spec.get("retryable", False)
