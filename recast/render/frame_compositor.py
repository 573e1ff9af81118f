"""Per-frame compositing: zoom, cursor erase, click glow and cursor sprite.

Frames are raw RGBA buffers straight from the decoder. Each call works on a
private copy and returns a new buffer of the same size, so the compositor is
safe to call from worker threads.
"""

import logging
import math

import numpy as np
from PIL import Image, ImageFilter

from recast.exceptions import FrameCompositingError
from recast.render.sprite_cache import SpriteCache, get_sprite_cache
from recast.utils.interpolation import FrameState

logger = logging.getLogger(__name__)

# Zoom below this is treated as identity
ZOOM_THRESHOLD = 1.01

# Square patch (half side, px) blurred to hide the cursor baked into the capture
BLUR_RADIUS = 25
BLUR_SIGMA = 15

# Click highlight
GLOW_SIZE = 60
GLOW_COLOR = (180, 130, 255)
GLOW_OPACITY = 0.3
GLOW_BLUR = 10


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _build_glow() -> np.ndarray:
    """Render the click glow once; every click reuses it."""
    alpha = _round_half_up(GLOW_OPACITY * 255)
    img = Image.new("RGBA", (GLOW_SIZE, GLOW_SIZE), (*GLOW_COLOR, alpha))
    img = img.filter(ImageFilter.GaussianBlur(GLOW_BLUR))
    return np.array(img, dtype=np.uint8)


def alpha_composite(base: np.ndarray, overlay: np.ndarray, left: int, top: int) -> None:
    """Blend RGBA *overlay* onto RGBA *base* in-place ("over"), clipped to *base*."""
    fh, fw = base.shape[:2]
    oh, ow = overlay.shape[:2]

    x1, y1 = left, top
    x2, y2 = left + ow, top + oh

    # Clip to frame
    src_x1 = max(0, -x1)
    src_y1 = max(0, -y1)
    x1 = max(0, x1)
    y1 = max(0, y1)
    x2 = min(fw, x2)
    y2 = min(fh, y2)
    if x2 <= x1 or y2 <= y1:
        return
    src_x2 = src_x1 + (x2 - x1)
    src_y2 = src_y1 + (y2 - y1)

    roi = base[y1:y2, x1:x2]
    src = overlay[src_y1:src_y2, src_x1:src_x2].astype(np.float32)

    src_a = src[:, :, 3:4] / 255.0
    dst = roi.astype(np.float32)
    dst_a = dst[:, :, 3:4] / 255.0

    out_a = src_a + dst_a * (1.0 - src_a)
    out_rgb = src[:, :, :3] * src_a + dst[:, :, :3] * dst_a * (1.0 - src_a)
    safe_a = np.where(out_a > 0, out_a, 1.0)
    out_rgb = out_rgb / safe_a

    blended = np.concatenate([out_rgb, out_a * 255.0], axis=2)
    np.copyto(roi, np.clip(blended + 0.5, 0, 255).astype(np.uint8))


class FrameCompositor:
    """Applies zoom and cursor effects to single frames.

    Usage:
        compositor = FrameCompositor()
        out = compositor.composite(frame, 1920, 1080, 640.0, 360.0, False, "normal")
    """

    def __init__(self, sprites: SpriteCache | None = None):
        self.sprites = sprites if sprites is not None else get_sprite_cache()
        self._glow = _build_glow()

    def composite(
        self,
        frame,
        width: int,
        height: int,
        cursor_x: float,
        cursor_y: float,
        is_clicking: bool,
        style: str,
        zoom_focus_x: float = 0.5,
        zoom_focus_y: float = 0.5,
        zoom_scale: float = 1.0,
    ) -> bytes:
        """
        Composite one frame.

        Args:
            frame: RGBA bytes of exactly width*height*4, or an (H, W, 4) uint8 array
            width: Frame width in pixels
            height: Frame height in pixels
            cursor_x: Cursor x in source pixels (negative = no cursor)
            cursor_y: Cursor y in source pixels (negative = no cursor)
            is_clicking: Draw the click glow
            style: Cursor sprite style
            zoom_focus_x: Normalized zoom focus x
            zoom_focus_y: Normalized zoom focus y
            zoom_scale: Magnification; <= 1.01 means no zoom

        Returns:
            RGBA bytes of the same size as the input

        Raises:
            FrameCompositingError: If the buffer does not match the dimensions
        """
        pixels = self._to_array(frame, width, height)

        if zoom_scale > ZOOM_THRESHOLD:
            pixels, cursor_x, cursor_y = self._apply_zoom(
                pixels, cursor_x, cursor_y, zoom_focus_x, zoom_focus_y, zoom_scale
            )

        if cursor_x < 0 or cursor_y < 0:
            return pixels.tobytes()

        ix = _round_half_up(cursor_x)
        iy = _round_half_up(cursor_y)

        self._blur_cursor_region(pixels, ix, iy)

        if is_clicking:
            glow_left = max(0, min(width - GLOW_SIZE, ix - GLOW_SIZE // 2))
            glow_top = max(0, min(height - GLOW_SIZE, iy - GLOW_SIZE // 2))
            alpha_composite(pixels, self._glow, glow_left, glow_top)

        sprite = self.sprites.get(style)
        if sprite is not None:
            sprite_left = max(0, min(width - sprite.width, ix))
            sprite_top = max(0, min(height - sprite.height, iy))
            alpha_composite(pixels, sprite.pixels, sprite_left, sprite_top)

        return pixels.tobytes()

    def composite_state(self, frame, width: int, height: int, state: FrameState, style: str) -> bytes:
        """Composite one frame from a precomputed FrameState."""
        return self.composite(
            frame,
            width,
            height,
            state.cursor_x,
            state.cursor_y,
            state.is_clicking,
            style,
            state.zoom_focus_x,
            state.zoom_focus_y,
            state.zoom_scale,
        )

    @staticmethod
    def _to_array(frame, width: int, height: int) -> np.ndarray:
        if width <= 0 or height <= 0:
            raise FrameCompositingError(f"Invalid frame size {width}x{height}")

        if isinstance(frame, np.ndarray):
            if frame.shape != (height, width, 4) or frame.dtype != np.uint8:
                raise FrameCompositingError(
                    f"Expected ({height}, {width}, 4) uint8 frame, got {frame.shape} {frame.dtype}"
                )
            return frame.copy()

        expected = width * height * 4
        if len(frame) != expected:
            raise FrameCompositingError(
                f"Frame buffer is {len(frame)} bytes, expected {expected} for {width}x{height} RGBA"
            )
        return np.frombuffer(frame, dtype=np.uint8).reshape(height, width, 4).copy()

    @staticmethod
    def _apply_zoom(
        pixels: np.ndarray,
        cursor_x: float,
        cursor_y: float,
        focus_x: float,
        focus_y: float,
        scale: float,
    ) -> tuple[np.ndarray, float, float]:
        height, width = pixels.shape[:2]
        crop_w = min(width, max(1, _round_half_up(width / scale)))
        crop_h = min(height, max(1, _round_half_up(height / scale)))
        cx = _round_half_up(focus_x * width)
        cy = _round_half_up(focus_y * height)
        left = max(0, min(width - crop_w, cx - _round_half_up(crop_w / 2)))
        top = max(0, min(height - crop_h, cy - _round_half_up(crop_h / 2)))

        crop = Image.fromarray(np.ascontiguousarray(pixels[top:top + crop_h, left:left + crop_w]))
        zoomed = crop.resize((width, height), Image.Resampling.LANCZOS)

        return (
            np.array(zoomed, dtype=np.uint8),
            (cursor_x - left) * scale,
            (cursor_y - top) * scale,
        )

    @staticmethod
    def _blur_cursor_region(pixels: np.ndarray, ix: int, iy: int) -> None:
        height, width = pixels.shape[:2]
        x1 = max(0, ix - BLUR_RADIUS)
        y1 = max(0, iy - BLUR_RADIUS)
        x2 = min(width, ix + BLUR_RADIUS)
        y2 = min(height, iy + BLUR_RADIUS)
        if x2 <= x1 or y2 <= y1:
            return

        patch = Image.fromarray(np.ascontiguousarray(pixels[y1:y2, x1:x2]))
        blurred = patch.filter(ImageFilter.GaussianBlur(BLUR_SIGMA))
        pixels[y1:y2, x1:x2] = np.asarray(blurred, dtype=np.uint8)
