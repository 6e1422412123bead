"""
Job processing engine: claims pending jobs, runs their handlers and applies
the retry and cleanup policies.

Every status change goes through ``JobStore.transition``, a conditional update
on the expected status, so overlapping runs can never double-process a job.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

from hubz.config.logging import get_logger
from hubz.config.settings import Settings
from hubz.v1.core.exceptions import (
    HandlerNotRegisteredError,
    InvalidJobTransitionError,
    JobNotFoundError,
    JobNotRetryableError,
)
from hubz.v1.core.registries import JobHandler, JobRegistry
from hubz.v1.infra.batch import BatchOutcome, BatchRunResult, run_batch
from hubz.v1.infra.jobs.models import (
    BackgroundJob,
    JobStatus,
    ensure_transition,
    truncate_error,
)
from hubz.v1.infra.jobs.store import JobStore, purge_stale_jobs

logger = get_logger(__name__)


def _job_id(job: BackgroundJob) -> str:
    return str(job.id)


class JobEngine:
    """
    Runs background jobs out of the job store.

    Features:
    - claim by conditional update, a lost claim is skipped rather than re-run
    - per-job failure isolation, one failing handler never stops the batch
    - bounded retries, failed jobs go back to pending while attempts < max_attempts
    - retention based cleanup and recovery of jobs left processing by a crash
    """

    def __init__(self, settings: Settings, job_store: JobStore, registry: JobRegistry):
        self.settings = settings
        self.job_store = job_store
        self.registry = registry

    async def process_pending_jobs(self) -> BatchRunResult:
        """Claim and execute every pending job once."""
        return await run_batch(
            "process-jobs",
            self.job_store.find_pending,
            self._process_job,
            describe=_job_id,
        )

    async def retry_failed_jobs(self) -> int:
        """Move failed jobs with attempts left back to pending. Returns the count."""
        result = await run_batch(
            "retry-jobs",
            self.job_store.find_failed_retryable,
            self._requeue_job,
            describe=_job_id,
        )

        abandoned = await self.job_store.count_abandoned()
        if abandoned:
            logger.warning("Abandoned jobs left in failed state", abandoned=abandoned)

        return result.success_count

    async def cleanup_old_jobs(self) -> int:
        """Delete jobs whose last update is older than the retention window."""
        retention_days = self.settings.job_retention_days
        deleted = await purge_stale_jobs(self.job_store, timedelta(days=retention_days))

        logger.info("Old jobs cleaned up", deleted=deleted, retention_days=retention_days)
        return deleted

    async def recover_stuck_jobs(self) -> int:
        """Fail jobs left processing past the timeout so the retry policy picks them up."""
        timeout_seconds = self.settings.job_stuck_timeout_s
        stuck_jobs = await self.job_store.find_stuck_older_than(
            timedelta(seconds=timeout_seconds)
        )

        recovered = 0
        for job in stuck_jobs:
            updated = await self.job_store.transition(
                job.id,
                JobStatus.PROCESSING,
                JobStatus.FAILED,
                attempts=BackgroundJob.attempts + 1,
                last_error=f"Job timed out after {timeout_seconds}s",
            )
            if updated is not None:
                recovered += 1

        if recovered:
            logger.warning(
                "Recovered stuck jobs",
                stuck_job_count=recovered,
                timeout_seconds=timeout_seconds,
            )
        return recovered

    async def execute_job(self, job_id: UUID) -> BackgroundJob:
        """
        Claim and run one pending job right away.

        Handler failures are recorded on the job (status failed, last_error)
        and the updated job is returned; they are not raised to the caller.

        Raises:
            JobNotFoundError: no job with this id
            InvalidJobTransitionError: the job is not pending
        """
        job = await self._get_or_raise(job_id)
        ensure_transition(job.status, JobStatus.PROCESSING, job_id)

        claimed = await self.job_store.transition(
            job_id, JobStatus.PENDING, JobStatus.PROCESSING
        )
        if claimed is None:
            current = await self._get_or_raise(job_id)
            raise InvalidJobTransitionError(
                job_id, current.status, JobStatus.PROCESSING.value
            )

        await self._run_claimed(claimed)
        return await self._get_or_raise(job_id)

    async def retry_job(self, job_id: UUID) -> BackgroundJob:
        """
        Re-queue one failed job.

        Raises:
            JobNotFoundError: no job with this id
            JobNotRetryableError: the job is not failed or has no attempts left
        """
        job = await self._get_or_raise(job_id)
        if not job.can_retry():
            raise JobNotRetryableError(job_id, job.status, job.attempts, job.max_attempts)

        updated = await self.job_store.transition(
            job_id,
            JobStatus.FAILED,
            JobStatus.PENDING,
            BackgroundJob.attempts < BackgroundJob.max_attempts,
        )
        if updated is None:
            current = await self._get_or_raise(job_id)
            raise JobNotRetryableError(
                job_id, current.status, current.attempts, current.max_attempts
            )

        logger.info("Job re-queued", job_id=str(job_id), attempts=updated.attempts)
        return updated

    async def _process_job(self, job: BackgroundJob) -> BatchOutcome:
        claimed = await self.job_store.transition(
            job.id, JobStatus.PENDING, JobStatus.PROCESSING
        )
        if claimed is None:
            logger.info("Job claimed elsewhere, skipping", job_id=str(job.id))
            return BatchOutcome.SKIPPED

        outcome = await self._run_claimed(claimed)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def _requeue_job(self, job: BackgroundJob) -> BatchOutcome:
        updated = await self.job_store.transition(
            job.id,
            JobStatus.FAILED,
            JobStatus.PENDING,
            BackgroundJob.attempts < BackgroundJob.max_attempts,
        )
        if updated is None:
            return BatchOutcome.SKIPPED

        logger.info(
            "Job re-queued",
            job_id=str(job.id),
            job_type=job.job_type,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
        )
        return BatchOutcome.SUCCESS

    async def _run_claimed(self, job: BackgroundJob) -> BatchOutcome | Exception:
        """
        Run the handler for a job already in processing and record the outcome.

        Returns the handler error after the job has been marked failed,
        SUCCESS once it is done, or SKIPPED when the job left processing
        while the handler ran (failed by stuck job recovery, for instance)
        and the outcome could not be recorded.
        """
        job_logger = logger.bind(job_id=str(job.id), job_type=job.job_type)
        job_logger.info("Processing job started", attempts=job.attempts)

        try:
            handler = self._resolve_handler(job.job_type)
            result = await handler.execute(job.payload)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            recorded = await self._record_outcome(
                job,
                JobStatus.FAILED,
                attempts=BackgroundJob.attempts + 1,
                last_error=truncate_error(error),
            )
            if not recorded:
                return BatchOutcome.SKIPPED

            job_logger.error(
                "Processing job failed",
                error=error,
                attempts=job.attempts + 1,
                max_attempts=job.max_attempts,
            )
            return e

        recorded = await self._record_outcome(
            job,
            JobStatus.DONE,
            executed_at=datetime.now(UTC),
            last_error=None,
        )
        if not recorded:
            return BatchOutcome.SKIPPED

        job_logger.info("Processing job completed successfully", result=result)
        return BatchOutcome.SUCCESS

    async def _record_outcome(
        self, job: BackgroundJob, target: JobStatus, **values
    ) -> bool:
        """Move a job out of processing; False when something else moved it first."""
        updated = await self.job_store.transition(
            job.id, JobStatus.PROCESSING, target, **values
        )
        if updated is not None:
            return True

        current = await self.job_store.get(job.id)
        logger.warning(
            "Job left processing before its outcome was recorded",
            job_id=str(job.id),
            job_type=job.job_type,
            outcome=target.value,
            current_status=current.status if current else None,
        )
        return False

    def _resolve_handler(self, job_type: str) -> JobHandler:
        if job_type not in self.registry:
            raise HandlerNotRegisteredError(job_type)
        return self.registry.get(job_type)

    async def _get_or_raise(self, job_id: UUID) -> BackgroundJob:
        job = await self.job_store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job
