"""In-process job coordinator.

Each accepted job runs as its own asyncio task. Records live in memory and
are replaced whole on every update, so readers never see a half-applied
change; readers always get deep copies.
"""

import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from lut_action.errors import LUTActionError, NotFoundError
from lut_action.jobs.dispatcher import JobDispatcher
from lut_action.jobs.models import (
    JobError,
    JobProgress,
    JobRecord,
    JobResult,
    JobStage,
    JobStatus,
    LUTJobRequest,
)
from lut_action.jobs.state import check_transition

logger = logging.getLogger(__name__)


class JobHandle:
    """What a running worker may do to its own record."""

    def __init__(self, coordinator: "JobCoordinator", job_id: str):
        self._coordinator = coordinator
        self.job_id = job_id

    def transition(self, status: JobStatus, message: str = "") -> JobRecord:
        return self._coordinator.transition(self.job_id, status, message=message)

    def progress(
        self,
        percent: float,
        stage: Optional[JobStage] = None,
        message: str = "",
        fps: Optional[float] = None,
        elapsed: Optional[float] = None,
    ) -> JobRecord:
        return self._coordinator.update_progress(
            self.job_id, percent, stage=stage, message=message, fps=fps, elapsed=elapsed
        )


JobWorker = Callable[[JobRecord, JobHandle], Awaitable[JobResult]]


class JobCoordinator(JobDispatcher):
    """Runs jobs as tracked asyncio tasks and owns their records."""

    def __init__(self, worker: JobWorker, retention_hours: float = 24):
        self._worker = worker
        self._retention = timedelta(hours=retention_hours)
        self._jobs: Dict[str, JobRecord] = {}
        self._keys: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._running = False

    # Dispatcher interface

    async def submit(self, request: LUTJobRequest) -> JobRecord:
        with self._lock:
            existing_id = self._keys.get(request.idempotency_key)
            if existing_id in self._jobs:
                logger.info(
                    "Idempotency key %s already maps to %s", request.idempotency_key, existing_id
                )
                return self._jobs[existing_id].model_copy(deep=True)

            job = JobRecord(request=request)
            self._jobs[job.id] = job
            self._keys[request.idempotency_key] = job.id
            snapshot = job.model_copy(deep=True)

        task = asyncio.create_task(self._run(job.id), name=job.id)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Accepted %s: asset=%s lut=%s", job.id, request.asset_id, request.lut_id)
        return snapshot

    async def get_status(self, job_id: str) -> Optional[JobRecord]:
        return self.get(job_id)

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        """Cancel in-flight jobs and wait for them to record their failure."""
        self._running = False
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def wait(self, job_id: str) -> Optional[JobRecord]:
        """Wait for a job's task to finish. Returns the final record."""
        for task in list(self._tasks):
            if task.get_name() == job_id:
                await asyncio.gather(task, return_exceptions=True)
        return self.get(job_id)

    # Record access

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def _replace(self, job_id: str, **changes: Any) -> JobRecord:
        """Swap in an updated copy of the record. Caller holds the lock."""
        current = self._jobs.get(job_id)
        if current is None:
            raise NotFoundError(f"Job not found: {job_id}", code="JOB_NOT_FOUND")
        updated = current.model_copy(update={**changes, "updated_at": datetime.utcnow()}, deep=True)
        self._jobs[job_id] = updated
        return updated.model_copy(deep=True)

    def transition(self, job_id: str, status: JobStatus, message: str = "", **changes: Any) -> JobRecord:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise NotFoundError(f"Job not found: {job_id}", code="JOB_NOT_FOUND")
            check_transition(job_id, current.status, status)
            if message:
                changes.setdefault(
                    "progress", current.progress.model_copy(update={"message": message})
                )
            record = self._replace(job_id, status=status, **changes)
        logger.info("%s -> %s", job_id, status.value)
        return record

    def update_progress(
        self,
        job_id: str,
        percent: float,
        stage: Optional[JobStage] = None,
        message: str = "",
        fps: Optional[float] = None,
        elapsed: Optional[float] = None,
    ) -> JobRecord:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise NotFoundError(f"Job not found: {job_id}", code="JOB_NOT_FOUND")
            progress = JobProgress(
                percent=max(0.0, min(100.0, percent)),
                stage=stage or current.progress.stage,
                message=message or current.progress.message,
                fps=fps,
                elapsed=elapsed,
            )
            return self._replace(job_id, progress=progress)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Drop finished jobs older than the retention window. Returns count removed."""
        cutoff = (now or datetime.utcnow()) - self._retention
        with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if job.is_finished and (job.completed_at or job.updated_at) < cutoff
            ]
            for job_id in expired:
                key = self._jobs.pop(job_id).request.idempotency_key
                if self._keys.get(key) == job_id:
                    del self._keys[key]
        if expired:
            logger.info("Purged %d expired job(s)", len(expired))
        return len(expired)

    # Execution

    async def _run(self, job_id: str) -> None:
        try:
            current = self.get(job_id)
            job = self.transition(
                job_id,
                JobStatus.PROCESSING,
                started_at=datetime.utcnow(),
                attempts=current.attempts + 1,
            )
            result = await self._worker(job, JobHandle(self, job_id))
            self.transition(
                job_id,
                JobStatus.COMPLETED,
                result=result,
                completed_at=datetime.utcnow(),
                progress=JobProgress(percent=100.0, stage=JobStage.COMPLETING, message="Completed"),
            )
            logger.info("%s completed in %dms", job_id, result.duration_ms)
        except asyncio.CancelledError:
            self._fail(job_id, JobError(code="CANCELLED", message="Job cancelled during shutdown"))
            raise
        except LUTActionError as exc:
            logger.error("%s failed: [%s] %s", job_id, exc.code, exc.message)
            self._fail(job_id, JobError(
                code=exc.code, message=exc.message, retryable=exc.retryable, details=exc.details,
            ))
        except Exception as exc:
            logger.exception("%s failed with an unexpected error", job_id)
            self._fail(job_id, JobError(
                code="INTERNAL_ERROR", message=f"{type(exc).__name__}: {exc}",
            ))

    def _fail(self, job_id: str, error: JobError) -> None:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None or current.is_finished:
                return
            self._replace(job_id, status=JobStatus.FAILED, error=error, completed_at=datetime.utcnow())
