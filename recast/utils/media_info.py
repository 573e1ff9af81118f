"""Media file information utilities using FFprobe."""

import json
import logging
import subprocess
from dataclasses import dataclass

from recast.config import get_settings
from recast.exceptions import ProbeError

logger = logging.getLogger(__name__)


def _get_settings():
    """Get settings lazily to avoid import issues in tests."""
    return get_settings()


@dataclass(frozen=True)
class VideoProbe:
    """What the transcode pipeline needs to know about a source video."""

    width: int
    height: int
    fps: float
    total_frames: int
    has_audio: bool = False

    @property
    def frame_size(self) -> int:
        """Bytes in one raw RGBA frame."""
        return self.width * self.height * 4


def _run_ffprobe(file_path: str, *args) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = _get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=60)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ProbeError(f"ffprobe could not run on {file_path}: {e}", path=file_path) from e

    if result.returncode != 0:
        raise ProbeError(f"ffprobe failed on {file_path}: {result.stderr.strip()}", path=file_path)

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise ProbeError(f"Failed to parse ffprobe output: {e}", path=file_path) from e


def parse_frame_rate(value: str | None) -> float:
    """Parse an ffprobe rational such as ``30000/1001``. Returns 0.0 if unusable."""
    if not value:
        return 0.0
    try:
        if "/" in value:
            num, den = value.split("/", 1)
            den_f = float(den)
            return float(num) / den_f if den_f > 0 else 0.0
        return float(value)
    except ValueError:
        return 0.0


def parse_probe_output(data: dict, file_path: str = "") -> VideoProbe:
    """Build a VideoProbe from ffprobe ``-show_format -show_streams`` JSON.

    ``total_frames`` comes from ``nb_frames`` when the container records it,
    otherwise ``round(duration * fps)``. Containers such as WebM often record
    neither on the stream, so the format duration is used as a fallback.

    Raises:
        ProbeError: No video stream, or no usable size / frame rate
    """
    video = None
    has_audio = False
    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")
        if codec_type == "video" and video is None:
            video = stream
        elif codec_type == "audio":
            has_audio = True

    if video is None:
        raise ProbeError(f"No video stream found in: {file_path}", path=file_path)

    width = video.get("width")
    height = video.get("height")
    if not width or not height:
        raise ProbeError(f"Video dimensions not found in: {file_path}", path=file_path)

    fps = parse_frame_rate(video.get("r_frame_rate")) or parse_frame_rate(
        video.get("avg_frame_rate")
    )
    if fps <= 0:
        raise ProbeError(f"Frame rate not found in: {file_path}", path=file_path)

    total_frames = 0
    nb_frames = video.get("nb_frames")
    if nb_frames and str(nb_frames).isdigit():
        total_frames = int(nb_frames)
    else:
        duration = video.get("duration") or data.get("format", {}).get("duration")
        try:
            total_frames = round(float(duration) * fps) if duration else 0
        except ValueError:
            total_frames = 0

    return VideoProbe(
        width=int(width),
        height=int(height),
        fps=fps,
        total_frames=total_frames,
        has_audio=has_audio,
    )


def probe_video(file_path: str) -> VideoProbe:
    """
    Read the dimensions, frame rate and frame count of a video.

    Args:
        file_path: Path to video file

    Returns:
        VideoProbe

    Raises:
        ProbeError: If ffprobe fails or the file has no usable video stream
    """
    data = _run_ffprobe(file_path, "-show_format", "-show_streams")
    probe = parse_probe_output(data, file_path)
    logger.info(
        f"[PROBE] {file_path}: {probe.width}x{probe.height} @ {probe.fps:.3f}fps, "
        f"{probe.total_frames} frames, audio={probe.has_audio}"
    )
    return probe
