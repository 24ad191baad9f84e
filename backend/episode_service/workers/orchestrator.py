import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from episode_service.core.errors import (
    CapacityExceeded,
    InvalidParameter,
    MissingParameter,
    UploadError,
)
from episode_service.services.conversion import ConversionJob, ConversionStatus
from episode_service.services.object_store import ArtifactLocation, ObjectStore
from episode_service.services.progress_store import ProgressSnapshot, ProgressTracker

logger = logging.getLogger(__name__)

CONTENT_TYPE = "video/mp4"

JobFactory = Callable[..., ConversionJob]


class StartResult(str, Enum):
    ACCEPTED = "accepted"
    ALREADY_EXISTS = "already_exists"
    IN_PROGRESS = "in_progress"


@dataclass
class JobRecord:
    job_id: str
    source_url: str
    state: str = "queued"  # queued | running | uploading | completed | failed
    error: Optional[str] = None


def validate_job_id(job_id: str) -> None:
    if job_id in (".", "..") or "/" in job_id or "\\" in job_id or "\x00" in job_id:
        raise InvalidParameter(f"fileName {job_id!r} cannot be used as a file name")


class JobOrchestrator:
    """
    Accepts download requests, deduplicates them against storage and runs the
    conversions on a bounded pool of worker tasks.

    A job id is claimed before the storage lookup and released when its job
    reaches a terminal state, so at most one conversion runs per id at a time.
    Accepted jobs are fire-and-forget: the outcome is only visible through the
    progress tracker and `record()`.
    """

    def __init__(
        self,
        storage: ObjectStore,
        tracker: ProgressTracker,
        download_dir: Path,
        *,
        workers: int = 4,
        max_queued: int = 16,
        max_finished: int = 256,
        ffmpeg_binary: str = "ffmpeg",
        job_factory: JobFactory = ConversionJob,
    ) -> None:
        self._storage = storage
        self._tracker = tracker
        self._download_dir = Path(download_dir)
        self._workers = workers
        self._ffmpeg_binary = ffmpeg_binary
        self._job_factory = job_factory
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queued)
        self._tasks: List[asyncio.Task] = []
        self._claims: Set[str] = set()
        self._records: Dict[str, JobRecord] = {}
        # Terminal job ids, oldest first; capped at max_finished
        self._finished: "OrderedDict[str, None]" = OrderedDict()
        self._max_finished = max_finished

    @property
    def tracker(self) -> ProgressTracker:
        return self._tracker

    async def start(self) -> None:
        for i in range(self._workers):
            task = asyncio.create_task(self._worker_loop(f"worker-{i+1}"))
            self._tasks.append(task)

    async def stop(self) -> None:
        # Running ffmpeg processes are not killed; the supervisor owns that
        for t in self._tasks:
            t.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def join(self) -> None:
        """Wait until every queued job has reached a terminal state."""
        await self._queue.join()

    def local_path(self, job_id: str) -> Path:
        return self._download_dir / f"{job_id}.mp4"

    def record(self, job_id: str) -> Optional[JobRecord]:
        return self._records.get(job_id)

    def is_active(self, job_id: str) -> bool:
        return job_id in self._claims

    async def start_download(self, source_url: Optional[str], job_id: Optional[str]) -> StartResult:
        if not source_url or not job_id:
            raise MissingParameter("episodeUrl and fileName are required")
        validate_job_id(job_id)

        # Claim before the first await so a concurrent request for the same id
        # cannot pass the storage check too
        if job_id in self._claims:
            return StartResult.IN_PROGRESS
        self._claims.add(job_id)

        try:
            location = await self._storage.exists_any(job_id)
        except BaseException:
            self._claims.discard(job_id)
            raise
        if location != ArtifactLocation.NOT_FOUND:
            self._claims.discard(job_id)
            logger.info("Skipping %s: already stored in %s", job_id, location.value)
            return StartResult.ALREADY_EXISTS

        job = self._job_factory(
            job_id,
            source_url,
            self.local_path(job_id),
            on_progress=self._on_progress,
            ffmpeg_binary=self._ffmpeg_binary,
        )
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self._claims.discard(job_id)
            raise CapacityExceeded("Too many conversions in progress, try again later")

        self._finished.pop(job_id, None)
        self._records[job_id] = JobRecord(job_id=job_id, source_url=source_url)
        self._tracker.set(job_id, ProgressSnapshot(job_id))
        logger.info("Queued conversion %s from %s", job_id, source_url)
        return StartResult.ACCEPTED

    def _on_progress(self, job_id: str, percent: float, duration: Optional[float]) -> None:
        self._tracker.update(job_id, percent, duration)

    async def _worker_loop(self, name: str) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._process(job)
            except Exception:
                logger.exception("Job %s failed in %s", job.job_id, name)
                self._mark_failed(job.job_id, "Unexpected error during processing")
            finally:
                self._claims.discard(job.job_id)
                self._retire(job.job_id)
                self._queue.task_done()

    async def _process(self, job: ConversionJob) -> None:
        record = self._records[job.job_id]
        record.state = "running"

        status = await job.run()
        if status != ConversionStatus.SUCCEEDED:
            self._mark_failed(job.job_id, str(job.error) if job.error else "Conversion failed")
            return

        current = self._tracker.get(job.job_id)
        self._tracker.update(job.job_id, 100.0, current.total_duration_seconds)
        record.state = "uploading"

        try:
            with open(job.output_path, "rb") as fh:
                await self._storage.upload(ArtifactLocation.USER, job.job_id, fh, CONTENT_TYPE)
        except UploadError as exc:
            # Keep the local file so it can be recovered by hand
            logger.error("Upload of %s failed, keeping %s: %s", job.job_id, job.output_path, exc)
            self._mark_failed(job.job_id, str(exc))
            return

        job.output_path.unlink(missing_ok=True)
        record.state = "completed"
        logger.info("Conversion %s uploaded to the user bucket", job.job_id)

    def _mark_failed(self, job_id: str, error: str) -> None:
        self._tracker.remove(job_id)
        record = self._records.get(job_id)
        if record is not None:
            record.state = "failed"
            record.error = error

    def _retire(self, job_id: str) -> None:
        """Remember a terminal job, forgetting the oldest ones beyond the cap."""
        self._finished[job_id] = None
        self._finished.move_to_end(job_id)
        while len(self._finished) > self._max_finished:
            old_id, _ = self._finished.popitem(last=False)
            if old_id in self._claims:
                continue
            self._records.pop(old_id, None)
            self._tracker.remove(old_id)
