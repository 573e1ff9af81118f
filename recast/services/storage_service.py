"""Object storage for source recordings and processed videos.

``download`` fetches a source over HTTP(S) (or copies a local path during
development); ``upload`` stores the processed MP4 and returns its public URL.
"""

import asyncio
import logging
import os
import shutil
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

from recast.config import Settings, get_settings
from recast.exceptions import StorageError

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 1024


def _local_source_path(url: str) -> str | None:
    """Return the filesystem path for ``file://`` URLs and bare paths, else None."""
    parsed = urlparse(url)
    if parsed.scheme == "file":
        return unquote(parsed.path)
    if parsed.scheme == "":
        return url
    return None


async def download_url(url: str, local_path: str, timeout: float = 300.0) -> str:
    """
    Download ``url`` to ``local_path``.

    HTTP(S) sources are streamed to disk; ``file://`` URLs and plain paths are
    copied.

    Args:
        url: Source URL or local path
        local_path: Destination file
        timeout: Overall bound in seconds

    Returns:
        local_path

    Raises:
        StorageError: On any network, HTTP or filesystem failure
    """
    Path(local_path).parent.mkdir(parents=True, exist_ok=True)

    source_path = _local_source_path(url)
    if source_path is not None:
        if not os.path.isfile(source_path):
            raise StorageError(f"Source file not found: {source_path}")
        try:
            await asyncio.to_thread(shutil.copyfile, source_path, local_path)
        except OSError as e:
            raise StorageError(f"Failed to copy {source_path}: {e}") from e
        logger.info(f"[STORAGE] Copied {source_path} -> {local_path}")
        return local_path

    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            async with client.stream("GET", url) as response:
                if response.status_code >= 400:
                    raise StorageError(f"Download failed: HTTP {response.status_code} for {url}")
                with open(local_path, "wb") as f:
                    async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)
    except httpx.HTTPError as e:
        raise StorageError(f"Download failed for {url}: {e}") from e
    except OSError as e:
        raise StorageError(f"Failed to write {local_path}: {e}") from e

    logger.info(f"[STORAGE] Downloaded {url} ({os.path.getsize(local_path)} bytes)")
    return local_path


class LocalStorageService:
    """Local file storage for development without GCS."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.base_path = Path(self.settings.local_storage_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, storage_key: str) -> Path:
        full_path = self.base_path / storage_key
        full_path.parent.mkdir(parents=True, exist_ok=True)
        return full_path

    def get_public_url(self, storage_key: str) -> str:
        """Get URL for accessing the file."""
        return f"{self.settings.local_public_base_url.rstrip('/')}/{storage_key}"

    def get_file_path(self, storage_key: str) -> Path:
        """Get the actual file path for serving."""
        return self._get_full_path(storage_key)

    async def download(self, url: str, local_path: str) -> str:
        return await download_url(url, local_path, timeout=self.settings.download_timeout_s)

    async def upload(self, local_path: str, storage_key: str, metadata: dict[str, str] | None = None) -> str:
        """Copy into the local storage directory. Metadata is not persisted."""
        full_path = self._get_full_path(storage_key)
        try:
            await asyncio.to_thread(shutil.copyfile, local_path, str(full_path))
        except OSError as e:
            raise StorageError(f"Upload failed for {storage_key}: {e}") from e
        logger.info(f"[STORAGE] Stored {storage_key} locally")
        return self.get_public_url(storage_key)

    def file_exists(self, storage_key: str) -> bool:
        """Check if file exists."""
        return (self.base_path / storage_key).exists()


class GCSStorageService:
    """Google Cloud Storage service for production."""

    def __init__(self, settings: Settings | None = None) -> None:
        from google.cloud import storage

        self.settings = settings or get_settings()
        self._storage = storage
        self._client: storage.Client | None = None
        self._bucket: storage.Bucket | None = None

    @property
    def client(self):
        if self._client is None:
            if self.settings.gcs_project_id:
                self._client = self._storage.Client(project=self.settings.gcs_project_id)
            else:
                self._client = self._storage.Client()
        return self._client

    @property
    def bucket(self):
        if self._bucket is None:
            self._bucket = self.client.bucket(self.settings.gcs_bucket_name)
        return self._bucket

    def get_public_url(self, storage_key: str) -> str:
        """Get the public URL for a stored file."""
        if self.settings.public_base_url:
            return f"{self.settings.public_base_url.rstrip('/')}/{storage_key}"
        return f"https://storage.googleapis.com/{self.settings.gcs_bucket_name}/{storage_key}"

    async def download(self, url: str, local_path: str) -> str:
        """Download a source; ``gs://bucket/key`` is read through the GCS client."""
        parsed = urlparse(url)
        if parsed.scheme != "gs":
            return await download_url(url, local_path, timeout=self.settings.download_timeout_s)

        blob = self.client.bucket(parsed.netloc).blob(parsed.path.lstrip("/"))
        Path(local_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            await asyncio.to_thread(
                blob.download_to_filename, local_path, timeout=self.settings.download_timeout_s
            )
        except Exception as e:
            raise StorageError(f"Download failed for {url}: {e}") from e
        return local_path

    async def upload(self, local_path: str, storage_key: str, metadata: dict[str, str] | None = None) -> str:
        """Upload a local file to GCS as video/mp4 with custom metadata."""
        blob = self.bucket.blob(storage_key)
        if metadata:
            blob.metadata = metadata
        try:
            await asyncio.to_thread(
                blob.upload_from_filename,
                local_path,
                content_type="video/mp4",
                timeout=self.settings.upload_timeout_s,
            )
        except Exception as e:
            raise StorageError(f"Upload failed for {storage_key}: {e}") from e
        logger.info(f"[STORAGE] Uploaded gs://{self.settings.gcs_bucket_name}/{storage_key}")
        return self.get_public_url(storage_key)

    def file_exists(self, storage_key: str) -> bool:
        """Check if a file exists in GCS."""
        return self.bucket.blob(storage_key).exists()


StorageService = LocalStorageService | GCSStorageService

_storage_service: StorageService | None = None


def get_storage_service() -> StorageService:
    """Local storage or GCS depending on ``use_local_storage``."""
    global _storage_service
    if _storage_service is None:
        settings = get_settings()
        if settings.use_local_storage:
            _storage_service = LocalStorageService(settings)
        else:
            _storage_service = GCSStorageService(settings)
    return _storage_service
