"""
Tests for media info extraction.

Test cases:
1. Parse ffprobe JSON (frame count, frame rate, audio detection)
2. Reject sources without a usable video stream
3. Probe a real file (requires ffmpeg)
"""

from pathlib import Path

import pytest

from conftest import requires_ffmpeg
from recast.exceptions import ProbeError
from recast.utils.media_info import VideoProbe, parse_frame_rate, parse_probe_output, probe_video


def _video_stream(**overrides) -> dict:
    stream = {
        "codec_type": "video",
        "width": 1920,
        "height": 1080,
        "r_frame_rate": "30/1",
        "nb_frames": "900",
    }
    stream.update(overrides)
    return stream


class TestParseFrameRate:
    def test_rational(self):
        assert parse_frame_rate("30/1") == 30.0
        assert parse_frame_rate("30000/1001") == pytest.approx(29.97, abs=0.001)

    def test_plain_number(self):
        assert parse_frame_rate("25") == 25.0

    def test_unusable(self):
        assert parse_frame_rate(None) == 0.0
        assert parse_frame_rate("0/0") == 0.0
        assert parse_frame_rate("abc") == 0.0


class TestParseProbeOutput:
    """Test building VideoProbe from ffprobe JSON."""

    def test_nb_frames(self):
        probe = parse_probe_output({"streams": [_video_stream()]})
        assert probe == VideoProbe(width=1920, height=1080, fps=30.0, total_frames=900, has_audio=False)
        assert probe.frame_size == 1920 * 1080 * 4

    def test_duration_fallback(self):
        """WebM recordings usually lack nb_frames; use format duration * fps."""
        data = {
            "streams": [_video_stream(nb_frames=None, r_frame_rate="60/1")],
            "format": {"duration": "12.5"},
        }
        assert parse_probe_output(data).total_frames == 750

    def test_avg_frame_rate_fallback(self):
        stream = _video_stream(r_frame_rate="0/0", avg_frame_rate="24/1")
        assert parse_probe_output({"streams": [stream]}).fps == 24.0

    def test_detects_audio(self):
        data = {"streams": [_video_stream(), {"codec_type": "audio", "codec_name": "opus"}]}
        assert parse_probe_output(data).has_audio is True

    def test_unknown_frame_count_is_zero(self):
        assert parse_probe_output({"streams": [_video_stream(nb_frames=None)]}).total_frames == 0

    def test_no_video_stream(self):
        with pytest.raises(ProbeError, match="No video stream"):
            parse_probe_output({"streams": [{"codec_type": "audio"}]}, "a.m4a")

    def test_missing_dimensions(self):
        with pytest.raises(ProbeError, match="dimensions"):
            parse_probe_output({"streams": [_video_stream(width=None)]})

    def test_missing_frame_rate(self):
        with pytest.raises(ProbeError, match="Frame rate"):
            parse_probe_output({"streams": [_video_stream(r_frame_rate="0/0")]})


class TestProbeVideo:
    """Test probing files with ffprobe."""

    def test_nonexistent_file(self, temp_output_dir: Path):
        with pytest.raises(ProbeError):
            probe_video(str(temp_output_dir / "missing.mp4"))

    def test_not_a_video(self, temp_output_dir: Path):
        path = temp_output_dir / "broken.mp4"
        path.write_bytes(b"\x00" * 64)
        with pytest.raises(ProbeError):
            probe_video(str(path))

    @requires_ffmpeg
    @pytest.mark.requires_ffmpeg
    def test_probe_synthetic_recording(self, synthetic_recording: Path):
        probe = probe_video(str(synthetic_recording))
        assert (probe.width, probe.height) == (160, 120)
        assert probe.fps == 10.0
        assert probe.total_frames == 20
        assert probe.has_audio is True
