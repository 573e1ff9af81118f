"""Interpolation utilities for cursor tracks and zoom windows.

Provides the zoom easing curve and the two per-frame lookups used by the
transcode pipeline:

    from recast.utils.interpolation import interpolate_cursor, active_zoom

    cursor = interpolate_cursor(samples, time_ms=1500)
    zoom = active_zoom(windows, time_sec=1.5)

Both are pure functions of their arguments; the pipeline calls them once per
output frame.
"""

from dataclasses import dataclass
from typing import Sequence

from recast.schemas.recording import CursorSample, ZoomWindow

# Fraction of the gap to the next sample during which a click stays visible
CLICK_VISIBLE_FRACTION = 0.3

# Fraction of a zoom window spent easing in (and, mirrored, easing out)
ZOOM_EASE_FRACTION = 0.15


# =============================================================================
# Easing
# =============================================================================


def cubic_in_out(t: float) -> float:
    """Ease in-out (cubic); zoom transitions use this curve."""
    if t < 0.5:
        return 4 * t * t * t
    else:
        return 1 - (-2 * t + 2) ** 3 / 2


# =============================================================================
# Per-frame state
# =============================================================================


@dataclass(frozen=True)
class CursorState:
    """Interpolated cursor at one instant. Negative coordinates = not drawn."""

    x: float
    y: float
    is_clicking: bool = False

    @classmethod
    def hidden(cls) -> "CursorState":
        return cls(-1.0, -1.0, False)

    @property
    def visible(self) -> bool:
        return self.x >= 0 and self.y >= 0


@dataclass(frozen=True)
class ZoomState:
    """Camera zoom at one instant. Focus is normalized to [0, 1]."""

    focus_x: float = 0.5
    focus_y: float = 0.5
    scale: float = 1.0


@dataclass(frozen=True)
class FrameState:
    """Everything the compositor needs to know about one output frame."""

    cursor_x: float
    cursor_y: float
    is_clicking: bool
    zoom_focus_x: float
    zoom_focus_y: float
    zoom_scale: float


# =============================================================================
# Core Interpolation
# =============================================================================


def interpolate_cursor(samples: Sequence[CursorSample], time_ms: float) -> CursorState:
    """Interpolate the cursor position and click flag at ``time_ms``.

    Positions are linearly interpolated between the bracketing samples. A
    click stays visible for the first 30% of the gap after a click sample.
    Before the first sample the first position is held; after the last sample
    the last position is held and nothing is clicking.

    Args:
        samples: Time-ordered cursor samples
        time_ms: Milliseconds from recording start

    Returns:
        CursorState; ``CursorState.hidden()`` when there is nothing to draw
    """
    if not samples:
        return CursorState.hidden()

    first = samples[0]
    if time_ms <= first.timestamp_ms:
        return CursorState(first.x, first.y, first.is_click)

    last = samples[-1]
    if time_ms >= last.timestamp_ms:
        return CursorState(last.x, last.y, False)

    for prev, nxt in zip(samples, samples[1:]):
        if prev.timestamp_ms <= time_ms <= nxt.timestamp_ms:
            span = nxt.timestamp_ms - prev.timestamp_ms
            alpha = 0.0 if span == 0 else (time_ms - prev.timestamp_ms) / span
            x = prev.x + (nxt.x - prev.x) * alpha
            y = prev.y + (nxt.y - prev.y) * alpha
            return CursorState(x, y, prev.is_click and alpha < CLICK_VISIBLE_FRACTION)

    # Only reachable with out-of-order samples
    return CursorState.hidden()


def active_zoom(windows: Sequence[ZoomWindow], time_sec: float) -> ZoomState:
    """Find the zoom window covering ``time_sec`` and ease its magnification.

    The first 15% of a window eases in, the last 15% eases out, and the
    middle holds full magnification. Only the scale is eased; the focus point
    is the window's own.

    Args:
        windows: Zoom windows, assumed non-overlapping (first match wins)
        time_sec: Seconds from recording start

    Returns:
        ZoomState; identity (centre, scale 1.0) outside every window
    """
    for window in windows:
        if window.start_sec <= time_sec <= window.end_sec:
            if window.duration_sec > 0:
                progress = (time_sec - window.start_sec) / window.duration_sec
            else:
                progress = 0.0

            if progress < ZOOM_EASE_FRACTION:
                ease = cubic_in_out(progress / ZOOM_EASE_FRACTION)
            elif progress > 1.0 - ZOOM_EASE_FRACTION:
                ease = cubic_in_out(1.0 - (progress - (1.0 - ZOOM_EASE_FRACTION)) / ZOOM_EASE_FRACTION)
            else:
                ease = 1.0

            return ZoomState(
                focus_x=window.x,
                focus_y=window.y,
                scale=1.0 + (window.scale - 1.0) * ease,
            )

    return ZoomState()


def frame_state_at(
    samples: Sequence[CursorSample],
    windows: Sequence[ZoomWindow],
    frame_index: int,
    fps: float,
) -> FrameState:
    """Compute the cursor and zoom state for output frame ``frame_index``."""
    time_sec = frame_index / fps
    cursor = interpolate_cursor(samples, time_sec * 1000.0)
    zoom = active_zoom(windows, time_sec)
    return FrameState(
        cursor_x=cursor.x,
        cursor_y=cursor.y,
        is_clicking=cursor.is_clicking,
        zoom_focus_x=zoom.focus_x,
        zoom_focus_y=zoom.focus_y,
        zoom_scale=zoom.scale,
    )
