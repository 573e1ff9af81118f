"""In-process job queue for recording post-processing.

Jobs are keyed by recording id. A single worker task runs them one at a time:

    download source -> transcode (cursor + zoom) -> upload -> cleanup

Only the worker changes a job once it has been submitted. Callers observe
progress through ``get_status`` or wait on ``wait_for``, which resolves when
the job reaches ``complete`` or ``failed``.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from recast.config import Settings, get_settings
from recast.exceptions import JobNotFoundError, RecastError, StorageError
from recast.render.transcode_pipeline import TranscodePipeline
from recast.schemas.recording import (
    CursorSample,
    JobStatusResponse,
    ProcessRecordingRequest,
    QueueStats,
    ZoomWindow,
)
from recast.services.storage_service import StorageService, get_storage_service

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Processing job status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class ProcessingJob:
    """One recording's post-processing job."""

    recording_id: str
    source_url: str
    cursor_samples: tuple[CursorSample, ...] = ()
    zoom_windows: tuple[ZoomWindow, ...] = ()
    cursor_style: str = "normal"
    project_id: str = "default"
    status: JobStatus = JobStatus.PENDING
    progress_percent: int = 0
    result_url: str | None = None
    error_message: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETE, JobStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "recording_id": self.recording_id,
            "project_id": self.project_id,
            "status": self.status.value,
            "progress_percent": self.progress_percent,
            "result_url": self.result_url,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def to_status(self) -> JobStatusResponse:
        return JobStatusResponse(
            recording_id=self.recording_id,
            status=self.status.value,
            progress_percent=self.progress_percent,
            result_url=self.result_url,
            error=self.error_message,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )


def processed_storage_key(project_id: str, recording_id: str) -> str:
    """Object key of a processed recording."""
    return f"recordings/{project_id}/{recording_id}_processed.mp4"


class ProcessingQueue:
    """Deduplicating FIFO of processing jobs with a single worker.

    Usage:
        queue = ProcessingQueue()
        job = queue.submit(request)
        job = await queue.wait_for(job.recording_id)
        print(job.status, job.result_url)
    """

    def __init__(
        self,
        storage: StorageService | None = None,
        pipeline: TranscodePipeline | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._storage = storage
        self._pipeline = pipeline
        self._jobs: dict[str, ProcessingJob] = {}
        self._done: dict[str, asyncio.Event] = {}
        self._pending: asyncio.Queue[str | None] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._closed = False

    @property
    def storage(self) -> StorageService:
        if self._storage is None:
            self._storage = get_storage_service()
        return self._storage

    @property
    def pipeline(self) -> TranscodePipeline:
        if self._pipeline is None:
            self._pipeline = TranscodePipeline(settings=self.settings)
        return self._pipeline

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(self, request: ProcessRecordingRequest) -> ProcessingJob:
        """
        Register a job, or return the existing job for the same recording.

        Must be called from a running event loop; the worker task is started
        on first use.

        Args:
            request: Validated processing request

        Returns:
            The job for ``request.recording_id`` (new or existing)
        """
        existing = self._jobs.get(request.recording_id)
        if existing is not None:
            logger.info(
                f"[QUEUE] Job for {request.recording_id} already exists ({existing.status.value})"
            )
            return existing

        if self._closed:
            raise RuntimeError("ProcessingQueue is closed")

        job = ProcessingJob(
            recording_id=request.recording_id,
            source_url=request.source_url,
            cursor_samples=tuple(request.cursor_samples),
            zoom_windows=tuple(request.zoom_windows),
            cursor_style=request.cursor_style,
            project_id=request.project_id,
        )
        self._jobs[job.recording_id] = job
        self._done[job.recording_id] = asyncio.Event()
        self._pending.put_nowait(job.recording_id)
        self._ensure_worker()

        logger.info(
            f"[QUEUE] Queued {job.recording_id}: {len(job.cursor_samples)} cursor samples, "
            f"{len(job.zoom_windows)} zoom windows, style={job.cursor_style}"
        )
        return job

    async def process_recording(self, request: ProcessRecordingRequest, wait: bool = True) -> str | None:
        """
        Submit a recording and (by default) wait for it.

        Returns:
            The processed video URL, or None if the job failed or is still
            running when ``wait`` is False
        """
        job = self.submit(request)
        if not wait:
            return job.result_url
        job = await self.wait_for(job.recording_id)
        return job.result_url

    async def wait_for(self, recording_id: str, timeout: float | None = None) -> ProcessingJob:
        """
        Wait until the job for ``recording_id`` is complete or failed.

        Raises:
            JobNotFoundError: No job was submitted for this recording
            asyncio.TimeoutError: ``timeout`` elapsed first
        """
        event = self._done.get(recording_id)
        if event is None:
            raise JobNotFoundError(recording_id)
        await asyncio.wait_for(event.wait(), timeout=timeout)
        return self._jobs[recording_id]

    # =========================================================================
    # Queries
    # =========================================================================

    def get_job(self, recording_id: str) -> ProcessingJob | None:
        return self._jobs.get(recording_id)

    def get_status(self, recording_id: str) -> JobStatusResponse | None:
        job = self._jobs.get(recording_id)
        return job.to_status() if job else None

    def get_processed_video_url(self, recording_id: str) -> str | None:
        job = self._jobs.get(recording_id)
        if job and job.status == JobStatus.COMPLETE:
            return job.result_url
        return None

    def get_stats(self) -> QueueStats:
        counts = {status: 0 for status in JobStatus}
        for job in self._jobs.values():
            counts[job.status] += 1
        return QueueStats(
            total=len(self._jobs),
            pending=counts[JobStatus.PENDING],
            processing=counts[JobStatus.PROCESSING],
            complete=counts[JobStatus.COMPLETE],
            failed=counts[JobStatus.FAILED],
        )

    # =========================================================================
    # Worker
    # =========================================================================

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run_worker())

    async def _run_worker(self) -> None:
        logger.info("[QUEUE] Worker started")
        while True:
            recording_id = await self._pending.get()
            if recording_id is None:
                break
            await self._process_job(self._jobs[recording_id])
        logger.info("[QUEUE] Worker stopped")

    async def _process_job(self, job: ProcessingJob) -> None:
        """Run one job to a terminal state. Never raises."""
        scratch_dir = None
        rid = job.recording_id

        try:
            job.status = JobStatus.PROCESSING
            job.started_at = datetime.now(UTC)
            job.progress_percent = 5

            os.makedirs(self.settings.scratch_dir, exist_ok=True)
            scratch_dir = tempfile.mkdtemp(prefix=f"recast_{rid}_", dir=self.settings.scratch_dir)
            input_path = os.path.join(scratch_dir, f"{rid}_input.mp4")
            output_path = os.path.join(scratch_dir, f"{rid}_processed.mp4")

            logger.info(f"[QUEUE] Downloading {rid} from {job.source_url}")
            try:
                await asyncio.wait_for(
                    self.storage.download(job.source_url, input_path),
                    timeout=self.settings.download_timeout_s,
                )
            except asyncio.TimeoutError as e:
                raise StorageError(f"Download timed out after {self.settings.download_timeout_s:.0f}s") from e
            job.progress_percent = 20

            def on_progress(pct: float) -> None:
                # Map pipeline progress (0-100) to job progress (20-70)
                job.progress_percent = max(job.progress_percent, min(70, 20 + int(pct * 0.5)))

            await self.pipeline.run(
                input_path,
                output_path,
                job.cursor_samples,
                job.zoom_windows,
                job.cursor_style,
                on_progress=on_progress,
            )
            job.progress_percent = 70

            storage_key = processed_storage_key(job.project_id, rid)
            metadata = {
                "recording-id": rid,
                "processed-at": datetime.now(UTC).isoformat(),
            }
            try:
                result_url = await asyncio.wait_for(
                    self.storage.upload(output_path, storage_key, metadata),
                    timeout=self.settings.upload_timeout_s,
                )
            except asyncio.TimeoutError as e:
                raise StorageError(f"Upload timed out after {self.settings.upload_timeout_s:.0f}s") from e

            job.result_url = result_url
            job.progress_percent = 100
            job.status = JobStatus.COMPLETE
            job.completed_at = datetime.now(UTC)
            logger.info(f"[QUEUE] Completed {rid}: {result_url}")

        except Exception as e:
            job.status = JobStatus.FAILED
            job.error_message = e.message if isinstance(e, RecastError) else (str(e) or type(e).__name__)
            job.completed_at = datetime.now(UTC)
            logger.error(f"[QUEUE] Failed {rid}: {job.error_message}")

        finally:
            if scratch_dir and os.path.exists(scratch_dir):
                try:
                    shutil.rmtree(scratch_dir)
                except OSError as e:
                    logger.warning(f"[QUEUE] Could not remove scratch dir {scratch_dir}: {e}")
            self._done[rid].set()

    async def close(self) -> None:
        """Finish already-submitted jobs, then stop the worker."""
        self._closed = True
        if self._worker is None or self._worker.done():
            return
        self._pending.put_nowait(None)
        await self._worker
