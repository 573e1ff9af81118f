"""
Pytest fixtures for recast tests.

Tests that run the real ffmpeg/ffprobe binaries are marked with
@pytest.mark.requires_ffmpeg and skipped when the binaries are not on PATH.
Run `pytest -m "not requires_ffmpeg"` to skip them explicitly.
"""

import shutil
import subprocess
import tempfile
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from recast.config import Settings
from recast.render.frame_compositor import FrameCompositor
from recast.render.sprite_cache import SpriteCache
from recast.schemas.recording import CursorKind, CursorSample, ZoomWindow

SPRITE_SIZE = 8
SPRITE_COLOR = (255, 0, 0, 255)


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring the ffmpeg and ffprobe binaries"
    )


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


requires_ffmpeg = pytest.mark.skipif(
    not _ffmpeg_available(),
    reason="ffmpeg/ffprobe not installed"
)


@pytest.fixture
def temp_output_dir():
    """Temporary directory for test outputs."""
    with tempfile.TemporaryDirectory(prefix="recast_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_settings(temp_output_dir: Path) -> Settings:
    """Settings pointing every writable path into the temp dir."""
    return Settings(
        scratch_root=str(temp_output_dir / "scratch"),
        local_storage_path=str(temp_output_dir / "storage"),
        local_public_base_url="http://files.test",
        cursor_assets_dir=str(temp_output_dir / "cursors"),
        transcode_stall_timeout_s=10.0,
        transcode_exit_timeout_s=30.0,
    )


@pytest.fixture
def sprite_dir(temp_output_dir: Path) -> Path:
    """Directory with a solid red 8x8 cursor_normal.png (no hand sprite)."""
    path = temp_output_dir / "cursors"
    path.mkdir(parents=True, exist_ok=True)
    Image.new("RGBA", (SPRITE_SIZE, SPRITE_SIZE), SPRITE_COLOR).save(path / "cursor_normal.png")
    return path


@pytest.fixture
def sprite_cache(sprite_dir: Path) -> SpriteCache:
    return SpriteCache(sprite_dir)


@pytest.fixture
def compositor(sprite_cache: SpriteCache) -> FrameCompositor:
    return FrameCompositor(sprite_cache)


@pytest.fixture
def empty_compositor(temp_output_dir: Path) -> FrameCompositor:
    """Compositor whose sprite directory has no assets at all."""
    return FrameCompositor(SpriteCache(temp_output_dir / "no_sprites"))


def make_frame(width: int, height: int, color=(0, 128, 0, 255)) -> bytes:
    """Solid RGBA frame."""
    frame = np.empty((height, width, 4), dtype=np.uint8)
    frame[:, :] = color
    return frame.tobytes()


def make_gradient_frame(width: int, height: int) -> bytes:
    """Frame whose pixels differ by position, so crops and blurs are visible."""
    ys, xs = np.mgrid[0:height, 0:width]
    frame = np.zeros((height, width, 4), dtype=np.uint8)
    frame[:, :, 0] = (xs * 255 // max(1, width - 1)).astype(np.uint8)
    frame[:, :, 1] = (ys * 255 // max(1, height - 1)).astype(np.uint8)
    frame[:, :, 2] = ((xs + ys) % 2 * 255).astype(np.uint8)
    frame[:, :, 3] = 255
    return frame.tobytes()


@pytest.fixture
def sample_track() -> list[CursorSample]:
    """Move at 0 ms, click at 1000 ms, move at 2000 ms."""
    return [
        CursorSample(timestamp_ms=0, x=0, y=0, kind=CursorKind.MOVE),
        CursorSample(timestamp_ms=1000, x=100, y=100, kind=CursorKind.CLICK),
        CursorSample(timestamp_ms=2000, x=200, y=100, kind=CursorKind.MOVE),
    ]


@pytest.fixture
def zoom_window() -> ZoomWindow:
    """2x zoom on [10 s, 20 s] centred on the frame."""
    return ZoomWindow(start_sec=10, x=0.5, y=0.5, scale=2.0, duration_sec=10)


@pytest.fixture
def synthetic_recording(temp_output_dir: Path) -> Path:
    """Two-second 160x120 test recording with a sine audio track (needs ffmpeg)."""
    path = temp_output_dir / "source.mp4"
    subprocess.run(
        [
            "ffmpeg", "-y", "-v", "error",
            "-f", "lavfi", "-i", "testsrc=size=160x120:rate=10:duration=2",
            "-f", "lavfi", "-i", "sine=frequency=440:duration=2",
            "-c:v", "libx264", "-pix_fmt", "yuv420p",
            "-c:a", "aac",
            "-shortest",
            str(path),
        ],
        capture_output=True,
        check=True,
    )
    return path
