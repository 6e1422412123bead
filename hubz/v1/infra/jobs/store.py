"""
Job store: durable record of background jobs and their status.
"""

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import ColumnElement, and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hubz.v1.infra.jobs.models import BackgroundJob, JobStatus, ensure_transition
from hubz.v1.infra.jobs.schemas import JobListFilters


class JobStore(Protocol):
    """Operations the engine and service need from job persistence."""

    async def find_pending(self) -> list[BackgroundJob]: ...

    async def find_failed_retryable(self) -> list[BackgroundJob]: ...

    async def find_stale_older_than(self, age: timedelta) -> list[BackgroundJob]: ...

    async def find_stuck_older_than(self, age: timedelta) -> list[BackgroundJob]: ...

    async def count_abandoned(self) -> int: ...

    async def save(self, job: BackgroundJob) -> BackgroundJob: ...

    async def delete_by_ids(self, job_ids: Sequence[UUID]) -> int: ...

    async def get(self, job_id: UUID) -> BackgroundJob | None: ...

    async def transition(
        self,
        job_id: UUID,
        expected: JobStatus,
        target: JobStatus,
        *criteria: ColumnElement[bool],
        **values: Any,
    ) -> BackgroundJob | None: ...


async def purge_stale_jobs(job_store: JobStore, age: timedelta) -> int:
    """Delete every job, whatever its status, not updated within ``age``."""
    stale = await job_store.find_stale_older_than(age)
    return await job_store.delete_by_ids([job.id for job in stale])


class SqlAlchemyJobStore:
    """JobStore backed by the background_jobs table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_pending(self) -> list[BackgroundJob]:
        return await self._find(
            BackgroundJob.status == JobStatus.PENDING.value,
        )

    async def find_failed_retryable(self) -> list[BackgroundJob]:
        return await self._find(
            BackgroundJob.status == JobStatus.FAILED.value,
            BackgroundJob.attempts < BackgroundJob.max_attempts,
        )

    async def find_stale_older_than(self, age: timedelta) -> list[BackgroundJob]:
        """Jobs of any status whose last transition is older than ``age``."""
        cutoff = datetime.now(UTC) - age
        return await self._find(BackgroundJob.updated_at < cutoff)

    async def find_stuck_older_than(self, age: timedelta) -> list[BackgroundJob]:
        cutoff = datetime.now(UTC) - age
        return await self._find(
            BackgroundJob.status == JobStatus.PROCESSING.value,
            BackgroundJob.updated_at < cutoff,
        )

    async def count_abandoned(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count(BackgroundJob.id)).where(
                    BackgroundJob.status == JobStatus.FAILED.value,
                    BackgroundJob.attempts >= BackgroundJob.max_attempts,
                )
            )
            return result.scalar() or 0

    async def save(self, job: BackgroundJob) -> BackgroundJob:
        async with self.session_factory() as session:
            session.add(job)
            await session.commit()
            await session.refresh(job)
            return job

    async def delete_by_ids(self, job_ids: Sequence[UUID]) -> int:
        if not job_ids:
            return 0

        async with self.session_factory() as session:
            result = await session.execute(
                delete(BackgroundJob)
                .where(BackgroundJob.id.in_(list(job_ids)))
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount

    async def get(self, job_id: UUID) -> BackgroundJob | None:
        async with self.session_factory() as session:
            return await session.get(BackgroundJob, job_id)

    async def transition(
        self,
        job_id: UUID,
        expected: JobStatus,
        target: JobStatus,
        *criteria: ColumnElement[bool],
        **values: Any,
    ) -> BackgroundJob | None:
        """
        Move a job from ``expected`` to ``target`` with a single conditional update.

        The row is only changed if it is still in ``expected`` status (plus any
        extra criteria), so two overlapping callers can never both apply the
        same transition. Returns the updated job, or None when the row was not
        in the expected state.
        """
        ensure_transition(expected, target, job_id)

        async with self.session_factory() as session:
            result = await session.execute(
                update(BackgroundJob)
                .where(
                    and_(
                        BackgroundJob.id == job_id,
                        BackgroundJob.status == expected.value,
                        *criteria,
                    )
                )
                .values(status=target.value, updated_at=datetime.now(UTC), **values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

            if result.rowcount != 1:
                return None

            return await session.get(BackgroundJob, job_id, populate_existing=True)

    async def list_jobs(self, filters: JobListFilters) -> list[BackgroundJob]:
        criteria = []
        if filters.status:
            criteria.append(BackgroundJob.status == filters.status.value)
        if filters.job_type:
            criteria.append(BackgroundJob.job_type == filters.job_type)

        async with self.session_factory() as session:
            result = await session.execute(
                select(BackgroundJob)
                .where(*criteria)
                .order_by(BackgroundJob.created_at.desc())
                .offset(filters.offset)
                .limit(filters.limit)
            )
            return list(result.scalars().all())

    async def count_by_status(self) -> dict[str, int]:
        return await self._count_grouped(BackgroundJob.status)

    async def count_by_type(self) -> dict[str, int]:
        return await self._count_grouped(BackgroundJob.job_type)

    async def _count_grouped(self, column) -> dict[str, int]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(column, func.count(BackgroundJob.id)).group_by(column)
            )
            return dict(result.all())

    async def _find(self, *criteria: ColumnElement[bool]) -> list[BackgroundJob]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(BackgroundJob)
                .where(*criteria)
                .order_by(BackgroundJob.created_at, BackgroundJob.id)
            )
            return list(result.scalars().all())
