"""Tests for the local CLI entrypoint and the cursor asset generator."""

import importlib.util
import json
from pathlib import Path

import pytest

from recast import worker
from recast.exceptions import InputError
from recast.render.sprite_cache import SpriteCache

SCRIPT_PATH = Path(__file__).resolve().parent.parent / "scripts" / "generate_cursor_assets.py"


def _load_asset_script():
    spec = importlib.util.spec_from_file_location("generate_cursor_assets", SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestLoadEvents:
    """Tests for load_events."""

    def test_orchestration_field_names(self, temp_output_dir: Path):
        path = temp_output_dir / "demo.json"
        path.write_text(json.dumps({
            "cursorData": [
                {"timestamp": 0, "x": 10, "y": 20, "type": "move"},
                {"timestamp": 500, "x": 30, "y": 40, "type": "click"},
            ],
            "zoomPoints": [{"time": 1.0, "x": 0.25, "y": 0.75, "scale": 2, "duration": 2}],
            "cursorStyle": "hand",
        }))

        request = worker.load_events(str(path))

        assert request.recording_id == "demo"
        assert request.source_url == "local"
        assert request.cursor_style == "hand"
        assert [s.is_click for s in request.cursor_samples] == [False, True]
        assert request.zoom_windows[0].end_sec == 3.0

    def test_snake_case_and_style_override(self, temp_output_dir: Path):
        path = temp_output_dir / "events.json"
        path.write_text(json.dumps({
            "recording_id": "rec-7",
            "cursor_samples": [{"timestamp_ms": 0, "x": 1, "y": 1, "kind": "move"}],
            "zoom_windows": [],
        }))

        request = worker.load_events(str(path), style="HAND")

        assert request.recording_id == "rec-7"
        assert request.cursor_style == "hand"
        assert request.zoom_windows == []

    def test_missing_file(self, temp_output_dir: Path):
        with pytest.raises(InputError, match="Could not read"):
            worker.load_events(str(temp_output_dir / "missing.json"))

    def test_invalid_json(self, temp_output_dir: Path):
        path = temp_output_dir / "bad.json"
        path.write_text("{not json")
        with pytest.raises(InputError):
            worker.load_events(str(path))

    def test_not_an_object(self, temp_output_dir: Path):
        path = temp_output_dir / "list.json"
        path.write_text("[]")
        with pytest.raises(InputError, match="JSON object"):
            worker.load_events(str(path))

    def test_invalid_payload(self, temp_output_dir: Path):
        path = temp_output_dir / "bad_zoom.json"
        path.write_text(json.dumps({"zoomPoints": [{"time": 0, "duration": -1, "scale": 2}]}))
        with pytest.raises(InputError, match="Invalid events file"):
            worker.load_events(str(path))


class TestMain:
    """Tests for main."""

    def test_returns_error_code_on_bad_events(self, temp_output_dir: Path):
        code = worker.main([
            str(temp_output_dir / "in.webm"),
            str(temp_output_dir / "out.mp4"),
            "--events", str(temp_output_dir / "missing.json"),
        ])
        assert code == 1

    def test_runs_pipeline(self, temp_output_dir: Path, monkeypatch):
        events = temp_output_dir / "events.json"
        events.write_text(json.dumps({"cursorData": []}))
        seen = {}

        async def fake_run_local(input_path, output_path, request):
            seen.update(input=input_path, output=output_path, style=request.cursor_style)
            return worker.TranscodeResult(
                output_path=output_path, width=4, height=4, fps=30.0, frames_written=1,
            )

        monkeypatch.setattr(worker, "run_local", fake_run_local)
        code = worker.main(["in.webm", "out.mp4", "--events", str(events), "--style", "hand"])

        assert code == 0
        assert seen == {"input": "in.webm", "output": "out.mp4", "style": "hand"}

    def test_requires_events(self):
        with pytest.raises(SystemExit):
            worker.build_parser().parse_args(["in.webm", "out.mp4"])


class TestCursorAssetScript:
    """Tests for scripts/generate_cursor_assets.py."""

    def test_generated_sprites_load(self, temp_output_dir: Path):
        script = _load_asset_script()
        out_dir = temp_output_dir / "cursors"

        written = script.generate(out_dir, size=32)

        assert [p.name for p in written] == ["cursor_normal.png", "cursor_hand.png"]
        cache = SpriteCache(out_dir)
        for style in ("normal", "hand"):
            sprite = cache.get(style)
            assert sprite is not None
            assert sprite.height >= 32
            assert sprite.pixels[..., 3].max() == 255

    def test_arrow_drawn_from_top_left(self):
        arrow = _load_asset_script().render_arrow(32)
        # inside the arrow body, below the tip
        assert arrow.getpixel((5, 18))[3] == 255
        assert arrow.getpixel((arrow.width - 1, 0))[3] == 0
