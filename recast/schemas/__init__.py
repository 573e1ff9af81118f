from recast.schemas.recording import (
    CURSOR_STYLES,
    CursorKind,
    CursorSample,
    JobStatusResponse,
    ProcessRecordingRequest,
    QueueStats,
    ZoomWindow,
    normalize_cursor_style,
)

__all__ = [
    "CURSOR_STYLES",
    "CursorKind",
    "CursorSample",
    "ZoomWindow",
    "ProcessRecordingRequest",
    "JobStatusResponse",
    "QueueStats",
    "normalize_cursor_style",
]
