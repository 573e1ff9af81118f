import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    log_level: str = "INFO"

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Cursor sprites (cursor_{style}.png)
    cursor_assets_dir: str = str(PACKAGE_DIR / "assets" / "cursors")
    default_cursor_style: str = "normal"

    # Encoder output
    transcode_video_codec: str = "libx264"
    transcode_preset: str = "medium"
    transcode_crf: int = 18
    # "copy" keeps the source audio stream untouched
    transcode_audio_codec: str = "copy"

    # Streaming / backpressure
    transcode_queue_depth: int = 2
    transcode_progress_interval_frames: int = 50
    transcode_stall_timeout_s: float = 60.0
    transcode_exit_timeout_s: float = 300.0

    # Network
    download_timeout_s: float = 300.0
    upload_timeout_s: float = 600.0

    # Scratch space for downloads and transcoder output
    scratch_root: str = ""

    # Local storage for development (when GCS is not configured)
    use_local_storage: bool = True  # Set to False in production
    local_storage_path: str = "/tmp/recast-storage"
    local_public_base_url: str = "http://localhost:8000/files"

    # Google Cloud Storage
    gcs_bucket_name: str = "recast-videos"
    gcs_project_id: str = ""
    # CDN / custom domain in front of the bucket; empty = storage.googleapis.com
    public_base_url: str = ""

    @computed_field
    @property
    def scratch_dir(self) -> str:
        """Directory that holds per-job scratch folders."""
        if self.scratch_root:
            return self.scratch_root
        return str(Path(tempfile.gettempdir()) / "recast")


@lru_cache
def get_settings() -> Settings:
    return Settings()
