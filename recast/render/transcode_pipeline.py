"""
Streaming transcode: decode -> composite -> encode.

The source is decoded by one ffmpeg process into raw RGBA frames on its
stdout, every frame is composited in-process, and the result is piped into a
second ffmpeg process that encodes H.264 and copies the source audio:

    decoder.stdout -> reader task -> bounded queue -> compositor -> encoder.stdin

Memory stays bounded regardless of video length:
- the reader accumulates at most one frame before handing it to the queue
- the queue holds ``transcode_queue_depth`` frames; when it is full the
  reader stops reading and the decoder blocks on its pipe
- each encoder write awaits ``drain()``, so a slow encoder stalls the consumer
"""

import asyncio
import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Optional, Sequence

from recast.config import Settings, get_settings
from recast.exceptions import FrameCompositingError, RecastError, TranscodeError
from recast.render.frame_compositor import FrameCompositor
from recast.schemas.recording import CursorSample, ZoomWindow
from recast.utils.interpolation import frame_state_at
from recast.utils.media_info import VideoProbe, probe_video

logger = logging.getLogger(__name__)

# Bytes of stderr kept per subprocess for error messages
STDERR_TAIL_BYTES = 8192

ProgressCallback = Callable[[float], Any]


@dataclass
class PipelineStats:
    """Counters for one transcode run."""

    frame_size: int = 0
    frames_read: int = 0
    frames_written: int = 0
    peak_buffered_bytes: int = 0
    dropped_bytes: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return asdict(self)


@dataclass
class TranscodeResult:
    """Outcome of a successful transcode."""

    output_path: str
    width: int
    height: int
    fps: float
    frames_written: int
    stats: PipelineStats = field(default_factory=PipelineStats)


class _FrameBuffer:
    """Bounded hand-off between the decoder reader and the compositor.

    Tracks every byte the engine holds between the decoder pipe and the
    encoder pipe: the partial frame being accumulated, frames waiting in the
    queue, a frame the reader is blocked handing off, and the frame currently
    being composited.
    """

    def __init__(self, depth: int, stats: PipelineStats):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, depth))
        self.stats = stats
        self.partial_bytes = 0
        self.held_bytes = 0

    def _update_peak(self) -> None:
        buffered = self.partial_bytes + self.held_bytes
        if buffered > self.stats.peak_buffered_bytes:
            self.stats.peak_buffered_bytes = buffered

    def set_partial(self, n: int) -> None:
        self.partial_bytes = n
        self._update_peak()

    def hold(self, n: int) -> None:
        self.held_bytes += n
        self._update_peak()

    def release(self, n: int) -> None:
        self.held_bytes -= n


class _StderrTail:
    """Drains a subprocess stderr stream, keeping only the last few KiB."""

    def __init__(self, limit: int = STDERR_TAIL_BYTES):
        self.limit = limit
        self._buf = bytearray()

    async def drain(self, stream: Optional[asyncio.StreamReader]) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                return
            self._buf.extend(chunk)
            if len(self._buf) > self.limit:
                del self._buf[: len(self._buf) - self.limit]

    def text(self) -> str:
        return self._buf.decode("utf-8", errors="replace")


def _format_rate(fps: float) -> str:
    return format(fps, ".6f").rstrip("0").rstrip(".")


class TranscodePipeline:
    """Runs one decode -> composite -> encode pass over a recording.

    Usage:
        pipeline = TranscodePipeline()
        result = await pipeline.run(
            "in.webm", "out.mp4", samples, windows, "normal",
            on_progress=lambda pct: print(f"{pct:.0f}%"),
        )
    """

    def __init__(
        self,
        compositor: Optional[FrameCompositor] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._compositor = compositor

    @property
    def compositor(self) -> FrameCompositor:
        if self._compositor is None:
            self._compositor = FrameCompositor()
        return self._compositor

    # =========================================================================
    # Commands
    # =========================================================================

    async def probe(self, input_path: str) -> VideoProbe:
        """Probe the source in a worker thread (ffprobe is a blocking call)."""
        return await asyncio.to_thread(probe_video, input_path)

    def build_decode_command(self, input_path: str, probe: VideoProbe) -> list[str]:
        """Decode the source to raw RGBA frames on stdout."""
        return [
            self.settings.ffmpeg_path,
            "-v", "error",
            "-i", input_path,
            "-f", "rawvideo",
            "-pix_fmt", "rgba",
            "pipe:1",
        ]

    def build_encode_command(self, input_path: str, output_path: str, probe: VideoProbe) -> list[str]:
        """Encode raw RGBA frames from stdin, taking audio from the source."""
        s = self.settings
        return [
            s.ffmpeg_path,
            "-y",
            "-v", "error",
            "-f", "rawvideo",
            "-pix_fmt", "rgba",
            "-s", f"{probe.width}x{probe.height}",
            "-r", _format_rate(probe.fps),
            "-i", "pipe:0",
            "-i", input_path,
            "-map", "0:v:0",
            "-map", "1:a:0?",
            "-c:v", s.transcode_video_codec,
            "-preset", s.transcode_preset,
            "-crf", str(s.transcode_crf),
            "-pix_fmt", "yuv420p",
            "-c:a", s.transcode_audio_codec,
            "-movflags", "+faststart",
            output_path,
        ]

    # =========================================================================
    # Run
    # =========================================================================

    async def run(
        self,
        input_path: str,
        output_path: str,
        samples: Sequence[CursorSample],
        windows: Sequence[ZoomWindow],
        style: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TranscodeResult:
        """
        Transcode ``input_path`` into ``output_path`` with cursor and zoom effects.

        Args:
            input_path: Local source video
            output_path: Local MP4 to write
            samples: Cursor samples (time-ordered)
            windows: Zoom windows
            style: Cursor sprite style
            on_progress: Called with a percentage every few frames

        Returns:
            TranscodeResult

        Raises:
            ProbeError: Source could not be probed
            TranscodeError: Decoder or encoder failed, stalled or timed out
            FrameCompositingError: A frame could not be composited
        """
        probe = await self.probe(input_path)
        samples = tuple(samples)
        windows = tuple(windows)

        stats = PipelineStats(frame_size=probe.frame_size)
        decode_cmd = self.build_decode_command(input_path, probe)
        encode_cmd = self.build_encode_command(input_path, output_path, probe)
        logger.info(
            f"[TRANSCODE] {input_path} -> {output_path} "
            f"({probe.width}x{probe.height} @ {_format_rate(probe.fps)}fps, ~{probe.total_frames} frames)"
        )
        logger.debug(f"[TRANSCODE] decode: {' '.join(decode_cmd)}")
        logger.debug(f"[TRANSCODE] encode: {' '.join(encode_cmd)}")

        decoder = encoder = None
        decoder_err = _StderrTail()
        encoder_err = _StderrTail()
        tasks: list[asyncio.Task] = []

        try:
            try:
                # limit caps the decoder StreamReader buffer at about one frame
                decoder = await asyncio.create_subprocess_exec(
                    *decode_cmd,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    limit=probe.frame_size,
                )
                encoder = await asyncio.create_subprocess_exec(
                    *encode_cmd,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise TranscodeError(f"Failed to start ffmpeg: {e}") from e

            buffer = _FrameBuffer(self.settings.transcode_queue_depth, stats)
            tasks = [
                asyncio.create_task(decoder_err.drain(decoder.stderr)),
                asyncio.create_task(encoder_err.drain(encoder.stderr)),
                asyncio.create_task(self._read_frames(decoder.stdout, buffer, probe.frame_size)),
            ]

            await self._pump_frames(buffer, encoder, probe, samples, windows, style, on_progress, encoder_err)
            await self._finish(decoder, encoder, decoder_err, encoder_err, tasks)

        except (RecastError, asyncio.CancelledError):
            await self._abort(decoder, encoder, tasks, output_path)
            raise
        except asyncio.TimeoutError as e:
            await self._abort(decoder, encoder, tasks, output_path)
            raise TranscodeError(
                "Transcoder timed out",
                stderr=decoder_err.text() + encoder_err.text(),
            ) from e
        except Exception as e:
            await self._abort(decoder, encoder, tasks, output_path)
            raise TranscodeError(f"Transcode failed: {e}", stderr=encoder_err.text()) from e

        if on_progress:
            on_progress(100.0)

        logger.info(
            f"[TRANSCODE] Done: {stats.frames_written} frames, "
            f"peak buffered {stats.peak_buffered_bytes} bytes"
        )
        return TranscodeResult(
            output_path=output_path,
            width=probe.width,
            height=probe.height,
            fps=probe.fps,
            frames_written=stats.frames_written,
            stats=stats,
        )

    async def _read_frames(self, stdout: asyncio.StreamReader, buffer: _FrameBuffer, frame_size: int) -> None:
        """Cut decoder output into whole frames and feed the queue.

        Always ends by enqueueing either ``None`` (clean EOF) or the exception
        that stopped it, so the consumer never waits forever.
        """
        stall_timeout = self.settings.transcode_stall_timeout_s
        partial = bytearray()
        try:
            while True:
                chunk = await asyncio.wait_for(stdout.read(frame_size - len(partial)), timeout=stall_timeout)
                if not chunk:
                    break
                partial.extend(chunk)
                if len(partial) < frame_size:
                    buffer.set_partial(len(partial))
                    continue

                frame = bytes(partial)
                partial.clear()
                buffer.set_partial(0)
                buffer.hold(frame_size)
                buffer.stats.frames_read += 1
                await buffer.queue.put(frame)
        except asyncio.TimeoutError:
            await buffer.queue.put(
                TranscodeError(f"Decoder produced no output for {stall_timeout:g}s")
            )
            return
        except Exception as e:
            await buffer.queue.put(e)
            return

        if partial:
            buffer.stats.dropped_bytes = len(partial)
            logger.warning(
                f"[TRANSCODE] Dropping trailing partial frame ({len(partial)} of {frame_size} bytes)"
            )
            buffer.set_partial(0)
        await buffer.queue.put(None)

    async def _pump_frames(
        self,
        buffer: _FrameBuffer,
        encoder: asyncio.subprocess.Process,
        probe: VideoProbe,
        samples: tuple,
        windows: tuple,
        style: str,
        on_progress: Optional[ProgressCallback],
        encoder_err: _StderrTail,
    ) -> None:
        """Composite queued frames in order and write them to the encoder."""
        stats = buffer.stats
        interval = max(1, self.settings.transcode_progress_interval_frames)
        stall_timeout = self.settings.transcode_stall_timeout_s
        frame_index = 0

        while True:
            item = await buffer.queue.get()
            if item is None:
                return
            if isinstance(item, BaseException):
                raise item

            state = frame_state_at(samples, windows, frame_index, probe.fps)
            try:
                out = await asyncio.to_thread(
                    self.compositor.composite_state, item, probe.width, probe.height, state, style
                )
            except FrameCompositingError as e:
                raise FrameCompositingError(e.message, frame_index=frame_index) from e
            except Exception as e:
                raise FrameCompositingError(str(e), frame_index=frame_index) from e

            try:
                encoder.stdin.write(out)
                await asyncio.wait_for(encoder.stdin.drain(), timeout=stall_timeout)
            except (BrokenPipeError, ConnectionResetError) as e:
                raise TranscodeError("Encoder closed its input", stderr=encoder_err.text()) from e
            finally:
                buffer.release(probe.frame_size)

            stats.frames_written += 1
            if on_progress and frame_index % interval == 0 and probe.total_frames > 0:
                on_progress(min(100.0, frame_index / probe.total_frames * 100))
            frame_index += 1

    async def _finish(
        self,
        decoder: asyncio.subprocess.Process,
        encoder: asyncio.subprocess.Process,
        decoder_err: _StderrTail,
        encoder_err: _StderrTail,
        tasks: list[asyncio.Task],
    ) -> None:
        """Close the encoder input and wait for both processes to exit cleanly."""
        exit_timeout = self.settings.transcode_exit_timeout_s

        encoder.stdin.close()
        try:
            await encoder.stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("[TRANSCODE] Encoder input already closed")

        await asyncio.wait_for(decoder.wait(), timeout=exit_timeout)
        await asyncio.wait_for(encoder.wait(), timeout=exit_timeout)
        await asyncio.gather(*tasks)

        if decoder.returncode != 0:
            raise TranscodeError(f"Decoder exited with code {decoder.returncode}", stderr=decoder_err.text())
        if encoder.returncode != 0:
            raise TranscodeError(f"Encoder exited with code {encoder.returncode}", stderr=encoder_err.text())

    @staticmethod
    async def _discard_pipes(proc: asyncio.subprocess.Process) -> None:
        """Read a killed process's output pipes to EOF, dropping the data."""
        for stream in (proc.stdout, proc.stderr):
            if stream is None:
                continue
            while await stream.read(65536):
                pass

    async def _abort(
        self,
        decoder: Optional[asyncio.subprocess.Process],
        encoder: Optional[asyncio.subprocess.Process],
        tasks: list[asyncio.Task],
        output_path: str,
    ) -> None:
        """Kill both processes, stop helper tasks and remove partial output."""
        exit_timeout = self.settings.transcode_exit_timeout_s
        procs = [p for p in (decoder, encoder) if p is not None]

        for proc in procs:
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        # Process.wait() only returns once every pipe reports EOF, and a
        # paused stdout transport never does until its buffer is read.
        for proc in procs:
            try:
                await asyncio.wait_for(self._discard_pipes(proc), timeout=exit_timeout)
                await asyncio.wait_for(proc.wait(), timeout=exit_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"[TRANSCODE] Process {proc.pid} did not exit after kill")

        if os.path.exists(output_path):
            try:
                os.remove(output_path)
            except OSError as e:
                logger.warning(f"[TRANSCODE] Could not remove partial output {output_path}: {e}")
