"""
Job service for enqueueing and inspecting background jobs.
"""

from uuid import UUID

from hubz.config.logging import get_logger
from hubz.config.settings import Settings
from hubz.v1.core.exceptions import JobNotFoundError
from hubz.v1.infra.jobs.models import BackgroundJob, JobStatus
from hubz.v1.infra.jobs.schemas import JobCreate, JobListFilters, JobStatsResponse
from hubz.v1.infra.jobs.store import SqlAlchemyJobStore

logger = get_logger(__name__)


class JobService:
    """Service for submitting and querying background jobs."""

    def __init__(self, settings: Settings, job_store: SqlAlchemyJobStore):
        self.settings = settings
        self.job_store = job_store

    async def enqueue_job(self, job_create: JobCreate) -> BackgroundJob:
        """
        Create a pending job.

        Any job_type is accepted here; a type with no registered handler fails
        when the engine picks it up.
        """
        job = BackgroundJob(
            job_type=job_create.job_type,
            payload=job_create.payload,
            status=JobStatus.PENDING.value,
            attempts=0,
            max_attempts=job_create.max_attempts or self.settings.job_max_attempts,
        )
        job = await self.job_store.save(job)

        logger.info(
            "Job enqueued",
            job_id=str(job.id),
            job_type=job.job_type,
            max_attempts=job.max_attempts,
        )
        return job

    async def get_job(self, job_id: UUID) -> BackgroundJob:
        job = await self.job_store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def list_jobs(
        self,
        status: JobStatus | None = None,
        job_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[BackgroundJob]:
        filters = JobListFilters(status=status, job_type=job_type, limit=limit, offset=offset)
        return await self.job_store.list_jobs(filters)

    async def get_job_stats(self) -> JobStatsResponse:
        """Get job counts by status and type."""
        by_status = await self.job_store.count_by_status()
        by_type = await self.job_store.count_by_type()

        # Queue depth (pending + processing)
        queue_depth = by_status.get(JobStatus.PENDING.value, 0) + by_status.get(
            JobStatus.PROCESSING.value, 0
        )

        return JobStatsResponse(
            total_jobs=sum(by_status.values()),
            by_status=by_status,
            by_type=by_type,
            queue_depth=queue_depth,
            abandoned=await self.job_store.count_abandoned(),
        )
