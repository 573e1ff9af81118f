"""Tests for source download and processed-video storage."""

from pathlib import Path

import httpx
import pytest

from recast.config import Settings
from recast.exceptions import StorageError
from recast.services import storage_service
from recast.services.storage_service import (
    GCSStorageService,
    LocalStorageService,
    download_url,
)


def _mock_http(monkeypatch, handler):
    """Route every AsyncClient created by the storage module through ``handler``."""
    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(storage_service.httpx, "AsyncClient", factory)


class TestDownloadUrl:
    """Tests for download_url."""

    @pytest.mark.asyncio
    async def test_copies_local_path(self, temp_output_dir: Path):
        source = temp_output_dir / "source.webm"
        source.write_bytes(b"abc")
        dest = temp_output_dir / "nested" / "input.mp4"

        result = await download_url(str(source), str(dest))

        assert result == str(dest)
        assert dest.read_bytes() == b"abc"

    @pytest.mark.asyncio
    async def test_copies_file_url(self, temp_output_dir: Path):
        source = temp_output_dir / "my recording.webm"
        source.write_bytes(b"xyz")
        dest = temp_output_dir / "input.mp4"

        await download_url(source.as_uri(), str(dest))

        assert dest.read_bytes() == b"xyz"

    @pytest.mark.asyncio
    async def test_missing_local_source(self, temp_output_dir: Path):
        with pytest.raises(StorageError, match="not found"):
            await download_url(str(temp_output_dir / "nope.webm"), str(temp_output_dir / "out.mp4"))

    @pytest.mark.asyncio
    async def test_http_download(self, temp_output_dir: Path, monkeypatch):
        payload = b"\x1a\x45\xdf\xa3" * 1000
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, content=payload)

        _mock_http(monkeypatch, handler)
        dest = temp_output_dir / "input.mp4"

        await download_url("https://cdn.test/rec.webm", str(dest))

        assert seen == ["https://cdn.test/rec.webm"]
        assert dest.read_bytes() == payload

    @pytest.mark.asyncio
    async def test_http_error_status(self, temp_output_dir: Path, monkeypatch):
        _mock_http(monkeypatch, lambda request: httpx.Response(404))

        with pytest.raises(StorageError, match="HTTP 404"):
            await download_url("https://cdn.test/missing.webm", str(temp_output_dir / "input.mp4"))

    @pytest.mark.asyncio
    async def test_network_error(self, temp_output_dir: Path, monkeypatch):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        _mock_http(monkeypatch, handler)

        with pytest.raises(StorageError, match="connection refused"):
            await download_url("https://cdn.test/rec.webm", str(temp_output_dir / "input.mp4"))


class TestLocalStorageService:
    """Tests for LocalStorageService."""

    @pytest.mark.asyncio
    async def test_upload_returns_public_url(self, test_settings: Settings, temp_output_dir: Path):
        service = LocalStorageService(test_settings)
        local = temp_output_dir / "out.mp4"
        local.write_bytes(b"mp4")

        url = await service.upload(str(local), "recordings/p/r_processed.mp4", {"recording-id": "r"})

        assert url == "http://files.test/recordings/p/r_processed.mp4"
        assert service.file_exists("recordings/p/r_processed.mp4")
        assert service.get_file_path("recordings/p/r_processed.mp4").read_bytes() == b"mp4"

    @pytest.mark.asyncio
    async def test_upload_missing_file(self, test_settings: Settings, temp_output_dir: Path):
        service = LocalStorageService(test_settings)
        with pytest.raises(StorageError):
            await service.upload(str(temp_output_dir / "missing.mp4"), "k.mp4")

    @pytest.mark.asyncio
    async def test_download_delegates(self, test_settings: Settings, temp_output_dir: Path):
        source = temp_output_dir / "src.webm"
        source.write_bytes(b"src")
        dest = temp_output_dir / "dst.mp4"

        await LocalStorageService(test_settings).download(str(source), str(dest))

        assert dest.read_bytes() == b"src"

    def test_file_exists_false(self, test_settings: Settings):
        assert LocalStorageService(test_settings).file_exists("nothing.mp4") is False


class FakeBlob:
    def __init__(self, name: str, fail: bool = False):
        self.name = name
        self.fail = fail
        self.metadata = None
        self.uploaded: dict | None = None

    def upload_from_filename(self, filename, content_type=None, timeout=None):
        if self.fail:
            raise RuntimeError("403 Forbidden")
        self.uploaded = {"filename": filename, "content_type": content_type, "timeout": timeout}


class FakeBucket:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.blobs: dict[str, FakeBlob] = {}

    def blob(self, name: str) -> FakeBlob:
        self.blobs[name] = FakeBlob(name, self.fail)
        return self.blobs[name]


class TestGCSStorageService:
    """Tests for GCSStorageService that do not touch the network."""

    def test_public_url_default(self):
        service = GCSStorageService(Settings(gcs_bucket_name="bucket-a", public_base_url=""))
        assert service.get_public_url("a/b.mp4") == "https://storage.googleapis.com/bucket-a/a/b.mp4"

    def test_public_url_override(self):
        service = GCSStorageService(Settings(public_base_url="https://cdn.test/"))
        assert service.get_public_url("a/b.mp4") == "https://cdn.test/a/b.mp4"

    @pytest.mark.asyncio
    async def test_upload_sets_metadata(self, temp_output_dir: Path):
        service = GCSStorageService(Settings(gcs_bucket_name="bucket-a", upload_timeout_s=42))
        service._bucket = FakeBucket()
        local = temp_output_dir / "out.mp4"
        local.write_bytes(b"mp4")

        url = await service.upload(str(local), "k.mp4", {"recording-id": "r"})

        blob = service._bucket.blobs["k.mp4"]
        assert blob.metadata == {"recording-id": "r"}
        assert blob.uploaded == {"filename": str(local), "content_type": "video/mp4", "timeout": 42}
        assert url == "https://storage.googleapis.com/bucket-a/k.mp4"

    @pytest.mark.asyncio
    async def test_upload_failure(self, temp_output_dir: Path):
        service = GCSStorageService(Settings())
        service._bucket = FakeBucket(fail=True)

        with pytest.raises(StorageError, match="403"):
            await service.upload(str(temp_output_dir / "out.mp4"), "k.mp4")
