"""Schemas for recording post-processing requests.

Payloads arrive from the script/video generation layer, which has used a
few spellings over time (``coord_x`` for ``x``, ``type`` for ``kind``,
``time`` for ``start_sec``...). All of them are accepted here so the rest of
the engine only sees one shape.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from recast.config import get_settings

CURSOR_STYLES = ("normal", "hand")


def normalize_cursor_style(style: str | None) -> str:
    """Map a missing or unknown style name to the configured default."""
    if style and style.lower() in CURSOR_STYLES:
        return style.lower()
    default = get_settings().default_cursor_style.lower()
    return default if default in CURSOR_STYLES else "normal"


# =============================================================================
# Event Streams
# =============================================================================


class CursorKind(str, Enum):
    """Kind of a recorded cursor sample."""

    MOVE = "move"
    CLICK = "click"


class CursorSample(BaseModel):
    """A single recorded cursor position, in source-video pixels."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timestamp_ms: float = Field(
        validation_alias=AliasChoices("timestamp_ms", "timestampMs", "timestamp"),
        description="Milliseconds from recording start",
    )
    x: float = Field(default=0.0, validation_alias=AliasChoices("x", "coord_x"))
    y: float = Field(default=0.0, validation_alias=AliasChoices("y", "coord_y"))
    kind: CursorKind = Field(
        default=CursorKind.MOVE,
        validation_alias=AliasChoices("kind", "type"),
    )

    @field_validator("x", "y", mode="before")
    @classmethod
    def none_to_zero(cls, v: Any) -> Any:
        return 0.0 if v is None else v

    @field_validator("kind", mode="before")
    @classmethod
    def coerce_kind(cls, v: Any) -> CursorKind:
        if isinstance(v, CursorKind):
            return v
        if isinstance(v, str) and v.lower() == "click":
            return CursorKind.CLICK
        return CursorKind.MOVE

    @property
    def is_click(self) -> bool:
        return self.kind is CursorKind.CLICK


class ZoomWindow(BaseModel):
    """A time window rendered with a camera zoom toward a focus point."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    start_sec: float = Field(validation_alias=AliasChoices("start_sec", "startSec", "time"))
    x: float = Field(default=0.5, ge=0.0, le=1.0, description="Normalized focus x")
    y: float = Field(default=0.5, ge=0.0, le=1.0, description="Normalized focus y")
    scale: float = Field(default=1.0, gt=0.0, description="Target magnification")
    duration_sec: float = Field(
        ge=0.0,
        validation_alias=AliasChoices("duration_sec", "durationSec", "duration"),
    )

    @property
    def end_sec(self) -> float:
        return self.start_sec + self.duration_sec


# =============================================================================
# Job Submission / Status
# =============================================================================


class ProcessRecordingRequest(BaseModel):
    """Request to post-process one screen recording."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "recordingId": "rec-123",
                    "videoUrl": "https://cdn.example.com/recordings/rec-123.webm",
                    "cursorData": [
                        {"timestamp": 0, "x": 100, "y": 100, "type": "move"},
                        {"timestamp": 1000, "x": 300, "y": 200, "type": "click"},
                    ],
                    "zoomPoints": [
                        {"time": 2.0, "x": 0.4, "y": 0.3, "scale": 1.8, "duration": 3.0}
                    ],
                    "cursorStyle": "normal",
                    "projectId": "proj-456",
                }
            ]
        },
    )

    recording_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("recording_id", "recordingId"),
    )
    source_url: str = Field(
        min_length=1,
        validation_alias=AliasChoices("source_url", "sourceUrl", "videoUrl", "video_url"),
    )
    cursor_samples: list[CursorSample] = Field(
        default_factory=list,
        validation_alias=AliasChoices("cursor_samples", "cursorSamples", "cursorData", "cursor_data"),
    )
    zoom_windows: list[ZoomWindow] = Field(
        default_factory=list,
        validation_alias=AliasChoices("zoom_windows", "zoomWindows", "zoomPoints", "zoom_points"),
    )
    cursor_style: str = Field(
        default="",
        validate_default=True,
        validation_alias=AliasChoices("cursor_style", "cursorStyle"),
    )
    project_id: str = Field(
        default="default",
        validation_alias=AliasChoices("project_id", "projectId"),
    )

    @field_validator("cursor_style", mode="before")
    @classmethod
    def validate_cursor_style(cls, v: Any) -> str:
        return normalize_cursor_style(v if isinstance(v, str) else None)


class JobStatusResponse(BaseModel):
    """Externally visible state of a processing job."""

    recording_id: str
    status: str
    progress_percent: int = Field(ge=0, le=100)
    result_url: str | None = None
    error: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class QueueStats(BaseModel):
    """Job counts by status."""

    total: int = 0
    pending: int = 0
    processing: int = 0
    complete: int = 0
    failed: int = 0
