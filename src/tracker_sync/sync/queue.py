"""Persisted sync job queue with a fixed asyncio worker pool.

Jobs are rows in the store; the in-memory ``asyncio.Queue`` only carries
job ids.  ``create_job()`` is synchronous and may be called from any
thread.  Workers:

1. Load the job and skip it unless it is still ``pending`` or
   ``retrying`` (so cancelled jobs never run).
2. Claim the job's resource keys.  A job whose keys overlap a running
   job is parked and re-queued when a job finishes, so at most one job
   per mapping is in flight.
3. Run the handler in a worker thread.  Handler exceptions fail the job;
   ``JobConfigurationError`` is final, anything else is retried with
   backoff while ``retry_count < max_retries``.

Jobs left ``pending`` or ``retrying`` in the store are re-queued by
``start()``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import timedelta
from typing import Any, Callable, Iterable, Sequence

from tracker_sync.core.async_utils import run_sync
from tracker_sync.errors import JobConfigurationError, ValidationError
from tracker_sync.sync.models import (
    DISPATCHABLE_JOB_STATUSES,
    TERMINAL_JOB_STATUSES,
    QueueStats,
    SyncDirection,
    SyncHistoryEntry,
    SyncJob,
    SyncJobRequest,
    SyncJobStatus,
)
from tracker_sync.sync.store import SyncStore, new_id, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 3
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAYS = (1.0, 5.0, 15.0, 60.0)

JobHandler = Callable[[SyncJob], None]
ResourceResolver = Callable[[SyncJob], Iterable[str]]


def default_resource_keys(job: SyncJob) -> set[str]:
    keys = {f"local:{local_id}" for local_id in job.local_ids}
    keys.update(f"remote:{key}" for key in job.remote_keys)
    return keys


class SyncJobQueue:
    """Create, dispatch, and track sync jobs.

    Args:
        store: Store holding jobs and history.
        max_concurrent: Number of worker tasks.
        retry_delays: Backoff delays in seconds, indexed by retry count
            (the last entry repeats).
        default_max_retries: ``max_retries`` for jobs that do not set one.
    """

    def __init__(
        self,
        store: SyncStore,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        retry_delays: Sequence[float] = DEFAULT_RETRY_DELAYS,
        default_max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._store = store
        self.max_concurrent = max_concurrent
        self.retry_delays = tuple(retry_delays) or DEFAULT_RETRY_DELAYS
        self.default_max_retries = default_max_retries

        self._handler: JobHandler | None = None
        self._resource_resolver: ResourceResolver = default_resource_keys
        self._state_lock = threading.RLock()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._channel: asyncio.Queue[str] | None = None
        self._workers: list[asyncio.Task] = []
        self._timers: set[asyncio.Task] = set()
        self._active_keys: set[str] = set()
        self._parked: list[str] = []

    def set_handler(
        self,
        handler: JobHandler,
        resource_resolver: ResourceResolver | None = None,
    ) -> None:
        """Register the function that processes a dispatched job."""
        self._handler = handler
        if resource_resolver is not None:
            self._resource_resolver = resource_resolver

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    def create_job(self, request: SyncJobRequest, created_by: str) -> SyncJob:
        """Persist a pending job and hand it to the workers."""
        metadata: dict[str, Any] = {
            "auto_resolve_conflicts": request.auto_resolve_conflicts,
        }
        if request.conflict_strategy is not None:
            metadata["conflict_strategy"] = request.conflict_strategy.value

        job = SyncJob(
            id=new_id(),
            direction=request.direction,
            operation_type=request.operation_type,
            status=SyncJobStatus.PENDING,
            total_items=max(len(request.local_ids), len(request.remote_keys), 1),
            local_ids=request.local_ids,
            remote_keys=request.remote_keys,
            project_key=request.project_key,
            epic_key=request.epic_key,
            created_at=utcnow(),
            created_by=created_by,
            max_retries=(
                request.max_retries
                if request.max_retries is not None
                else self.default_max_retries
            ),
            metadata=metadata,
        )
        job = self._store.insert_job(job)
        self._store.add_history(
            job.id,
            "created",
            {
                "direction": job.direction.value,
                "operation_type": job.operation_type.value,
                "total_items": job.total_items,
            },
            created_by,
        )
        logger.info(
            "Created %s job (%s, %d items)",
            job.operation_type.value,
            job.direction.value,
            job.total_items,
            extra={"job_id": job.id},
        )
        self._enqueue(job.id)
        return job

    def start_job(self, job_id: str) -> SyncJob | None:
        """Move a dispatchable job to ``in_progress``.

        Returns ``None`` if the job is gone or no longer dispatchable.
        """
        with self._state_lock:
            job = self._store.get_job(job_id)
            if job is None or job.status not in DISPATCHABLE_JOB_STATUSES:
                return None
            started = self._store.update_job(
                job_id,
                status=SyncJobStatus.IN_PROGRESS,
                started_at=utcnow(),
                error=None,
            )
        self._store.add_history(job_id, "started", {"retry_count": job.retry_count})
        logger.info("Started job", extra={"job_id": job_id})
        return started

    def update_progress(
        self,
        job_id: str,
        processed_items: int,
        failed_items: int,
        metadata: dict[str, Any] | None = None,
    ) -> SyncJob:
        """Record item counts; progress is the attempted share, floored."""
        job = self.get_job_or_raise(job_id)
        attempted = processed_items + failed_items
        fields: dict[str, Any] = {
            "processed_items": processed_items,
            "failed_items": failed_items,
            "progress": min(100, (attempted * 100) // max(job.total_items, 1)),
        }
        if metadata is not None:
            fields["metadata"] = metadata
        return self._store.update_job(job_id, **fields)

    def complete_job(
        self, job_id: str, metadata: dict[str, Any] | None = None
    ) -> SyncJob:
        fields: dict[str, Any] = {
            "status": SyncJobStatus.COMPLETED,
            "progress": 100,
            "completed_at": utcnow(),
        }
        if metadata is not None:
            fields["metadata"] = metadata
        with self._state_lock:
            job = self._store.update_job(job_id, **fields)
        self._store.add_history(
            job_id,
            "completed",
            {
                "processed_items": job.processed_items,
                "failed_items": job.failed_items,
            },
        )
        logger.info(
            "Completed job: %d processed, %d failed",
            job.processed_items,
            job.failed_items,
            extra={"job_id": job_id},
        )
        return job

    def fail_job(self, job_id: str, error: str, retryable: bool = True) -> SyncJob:
        """Mark a job failed and schedule an automatic retry if allowed."""
        with self._state_lock:
            job = self._store.update_job(
                job_id,
                status=SyncJobStatus.FAILED,
                error=error,
                completed_at=utcnow(),
            )
        self._store.add_history(
            job_id,
            "failed",
            {"error": error, "retry_count": job.retry_count, "retryable": retryable},
        )
        logger.error("Job failed: %s", error, extra={"job_id": job_id})

        if retryable and job.retry_count < job.max_retries:
            return self.retry_job(job_id, "system")
        return job

    def cancel_job(self, job_id: str, cancelled_by: str) -> SyncJob:
        """Cancel a job that has not been dispatched yet.

        Raises:
            ValidationError: If the job is missing or already running or
                finished.
        """
        with self._state_lock:
            job = self.get_job_or_raise(job_id)
            if job.status not in DISPATCHABLE_JOB_STATUSES:
                raise ValidationError(
                    f"Job {job_id} is {job.status.value} and cannot be cancelled"
                )
            cancelled = self._store.update_job(
                job_id,
                status=SyncJobStatus.CANCELLED,
                completed_at=utcnow(),
            )
        self._store.add_history(job_id, "cancelled", {}, cancelled_by)
        logger.info("Cancelled job", extra={"job_id": job_id})
        return cancelled

    def retry_job(self, job_id: str, retried_by: str) -> SyncJob:
        """Re-queue a failed job after the backoff delay.

        Raises:
            ValidationError: If the job is missing, not failed, or out of
                retries.
        """
        with self._state_lock:
            job = self.get_job_or_raise(job_id)
            if job.status != SyncJobStatus.FAILED:
                raise ValidationError(
                    f"Job {job_id} is {job.status.value}; only failed jobs can be retried"
                )
            if job.retry_count >= job.max_retries:
                raise ValidationError(
                    f"Job {job_id} has reached its retry limit ({job.max_retries})"
                )
            retrying = self._store.update_job(
                job_id,
                status=SyncJobStatus.RETRYING,
                retry_count=job.retry_count + 1,
                completed_at=None,
            )

        delay = self.retry_delay(job.retry_count)
        self._store.add_history(
            job_id,
            "retrying",
            {"retry_count": retrying.retry_count, "delay": delay},
            retried_by,
        )
        logger.info(
            "Retrying job (attempt %d) in %.1fs",
            retrying.retry_count,
            delay,
            extra={"job_id": job_id},
        )
        self._enqueue(job_id, delay)
        return retrying

    def retry_delay(self, retry_count: int) -> float:
        index = min(retry_count, len(self.retry_delays) - 1)
        return self.retry_delays[index]

    # ------------------------------------------------------------------
    # Queries and housekeeping
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> SyncJob | None:
        return self._store.get_job(job_id)

    def get_job_or_raise(self, job_id: str) -> SyncJob:
        job = self._store.get_job(job_id)
        if job is None:
            raise ValidationError(f"Sync job {job_id} not found")
        return job

    def get_jobs(
        self,
        statuses: Iterable[SyncJobStatus] | None = None,
        direction: SyncDirection | None = None,
        created_by: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[SyncJob]:
        return self._store.list_jobs(statuses, direction, created_by, limit, offset)

    def get_history(self, job_id: str) -> list[SyncHistoryEntry]:
        return self._store.get_history(job_id)

    def get_stats(self) -> QueueStats:
        counts = self._store.count_jobs_by_status()
        return QueueStats(
            pending=counts.get(SyncJobStatus.PENDING.value, 0)
            + counts.get(SyncJobStatus.RETRYING.value, 0),
            in_progress=counts.get(SyncJobStatus.IN_PROGRESS.value, 0),
            completed=counts.get(SyncJobStatus.COMPLETED.value, 0),
            failed=counts.get(SyncJobStatus.FAILED.value, 0),
            total=sum(counts.values()),
        )

    def cleanup_old_jobs(self, days_old: int = 30) -> int:
        """Delete finished jobs (and their history) older than *days_old*."""
        cutoff = utcnow() - timedelta(days=days_old)
        deleted = self._store.delete_jobs_before(cutoff, TERMINAL_JOB_STATUSES)
        if deleted:
            logger.info("Cleaned up %d old jobs", deleted)
        return deleted

    # ------------------------------------------------------------------
    # Worker pool
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the workers and re-queue persisted dispatchable jobs."""
        if self._workers:
            return
        self._loop = asyncio.get_running_loop()
        self._channel = asyncio.Queue()
        recovered = await run_sync(self._store.list_dispatchable_jobs)
        for job in recovered:
            self._channel.put_nowait(job.id)
        if recovered:
            logger.info("Recovered %d queued jobs", len(recovered))
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"sync-worker-{i}")
            for i in range(self.max_concurrent)
        ]
        logger.info("Sync queue started with %d workers", self.max_concurrent)

    async def stop(self) -> None:
        """Cancel workers and pending retry timers."""
        tasks = self._workers + list(self._timers)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._workers = []
        self._timers.clear()
        self._active_keys.clear()
        self._parked.clear()
        self._channel = None
        self._loop = None
        logger.info("Sync queue stopped")

    async def join(self) -> None:
        """Wait until every queued job and scheduled retry has been handled."""
        while self._channel is not None:
            await self._channel.join()
            if not self._timers:
                return
            await asyncio.gather(*list(self._timers), return_exceptions=True)

    def _enqueue(self, job_id: str, delay: float = 0.0) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug(
                "Queue not running; job stays queued in the store",
                extra={"job_id": job_id},
            )
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._put(job_id, delay)
        else:
            loop.call_soon_threadsafe(self._put, job_id, delay)

    def _put(self, job_id: str, delay: float) -> None:
        if self._channel is None:
            return
        if delay > 0:
            timer = asyncio.ensure_future(self._put_later(job_id, delay))
            self._timers.add(timer)
            timer.add_done_callback(self._timers.discard)
        else:
            self._channel.put_nowait(job_id)

    async def _put_later(self, job_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._channel is not None:
            self._channel.put_nowait(job_id)

    async def _worker(self, index: int) -> None:
        assert self._channel is not None
        channel = self._channel
        while True:
            job_id = await channel.get()
            try:
                await self._dispatch(job_id)
            except Exception:
                logger.exception(
                    "Worker %d failed to dispatch job", index, extra={"job_id": job_id}
                )
            finally:
                channel.task_done()

    async def _dispatch(self, job_id: str) -> None:
        job = await run_sync(self._store.get_job, job_id)
        if job is None or job.status not in DISPATCHABLE_JOB_STATUSES:
            logger.debug("Skipping job that is no longer queued", extra={"job_id": job_id})
            return

        keys = {f"job:{job.id}"}
        keys.update(await run_sync(self._resource_resolver, job))
        if keys & self._active_keys:
            logger.debug("Parking job behind a running job", extra={"job_id": job_id})
            self._parked.append(job_id)
            return

        self._active_keys |= keys
        try:
            await run_sync(self._run_job, job_id)
        finally:
            self._active_keys -= keys
            parked, self._parked = self._parked, []
            if self._channel is not None:
                for parked_id in parked:
                    self._channel.put_nowait(parked_id)

    def _run_job(self, job_id: str) -> None:
        if self._handler is None:
            raise JobConfigurationError("No job handler registered")
        job = self.start_job(job_id)
        if job is None:
            return
        try:
            self._handler(job)
        except JobConfigurationError as exc:
            self.fail_job(job_id, str(exc), retryable=False)
        except Exception as exc:
            logger.exception("Job handler raised", extra={"job_id": job_id})
            self.fail_job(job_id, str(exc), retryable=True)
