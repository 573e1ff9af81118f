"""Local entrypoint: post-process one recording without the queue or storage.

Usage:
    python -m recast.worker input.webm output.mp4 --events events.json [--style hand]

``events.json`` holds the cursor samples and zoom windows, either in the
orchestration layer's shape::

    {"cursorData": [{"timestamp": 0, "x": 10, "y": 20, "type": "move"}],
     "zoomPoints": [{"time": 1.0, "x": 0.5, "y": 0.5, "scale": 2, "duration": 2}]}

or with the snake_case names (``cursor_samples`` / ``zoom_windows``).
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from recast.config import get_settings
from recast.exceptions import InputError, RecastError
from recast.render.transcode_pipeline import TranscodePipeline, TranscodeResult
from recast.schemas.recording import ProcessRecordingRequest

logger = logging.getLogger(__name__)


def load_events(path: str, style: str | None = None) -> ProcessRecordingRequest:
    """Parse an events file into a request for a local recording.

    Raises:
        InputError: File unreadable or payload malformed
    """
    try:
        payload = json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise InputError(f"Could not read events file {path}: {e}") from e
    if not isinstance(payload, dict):
        raise InputError(f"Events file {path} must contain a JSON object")

    payload.setdefault("recording_id", Path(path).stem)
    payload.setdefault("source_url", "local")
    if style:
        payload["cursor_style"] = style

    try:
        return ProcessRecordingRequest.model_validate(payload)
    except ValidationError as e:
        raise InputError(f"Invalid events file {path}: {e}") from e


async def run_local(input_path: str, output_path: str, request: ProcessRecordingRequest) -> TranscodeResult:
    pipeline = TranscodePipeline()

    def on_progress(pct: float) -> None:
        logger.info(f"[WORKER] {pct:5.1f}%")

    return await pipeline.run(
        input_path,
        output_path,
        request.cursor_samples,
        request.zoom_windows,
        request.cursor_style,
        on_progress=on_progress,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recast",
        description="Replace the captured cursor, add click highlights and zoom to a screen recording.",
    )
    parser.add_argument("input", help="Source video")
    parser.add_argument("output", help="Output MP4")
    parser.add_argument("--events", required=True, help="JSON file with cursor samples and zoom windows")
    parser.add_argument("--style", default=None, help="Cursor style (normal, hand)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(name)s | %(levelname)s | %(message)s",
    )

    try:
        request = load_events(args.events, args.style)
        result = asyncio.run(run_local(args.input, args.output, request))
    except RecastError as e:
        logger.error(f"[WORKER] {e.code}: {e.message}")
        return 1

    logger.info(
        f"[WORKER] Wrote {result.output_path} "
        f"({result.frames_written} frames, {result.width}x{result.height})"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
