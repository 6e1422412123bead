from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from hubz.v1.core.exceptions import InvalidJobTransitionError
from hubz.v1.infra.jobs.models import BackgroundJob, JobStatus
from hubz.v1.infra.jobs.schemas import JobListFilters
from hubz.v1.infra.jobs.store import purge_stale_jobs


def days_ago(days: int) -> datetime:
    return datetime.now(UTC) - timedelta(days=days)


@pytest.mark.asyncio
async def test_find_pending_in_creation_order(job_store, make_job):
    second = await make_job(created_at=days_ago(1))
    first = await make_job(created_at=days_ago(2))
    await make_job(status="done")

    pending = await job_store.find_pending()

    assert [job.id for job in pending] == [first.id, second.id]


@pytest.mark.asyncio
async def test_find_failed_retryable_excludes_exhausted(job_store, make_job):
    retryable = await make_job(status="failed", attempts=1)
    await make_job(status="failed", attempts=3, max_attempts=3)

    found = await job_store.find_failed_retryable()

    assert [job.id for job in found] == [retryable.id]
    assert await job_store.count_abandoned() == 1


@pytest.mark.asyncio
async def test_find_stale_covers_every_status(job_store, make_job):
    stale_ids = set()
    for status in ("pending", "processing", "done", "failed"):
        job = await make_job(status=status, updated_at=days_ago(40))
        stale_ids.add(job.id)
    await make_job(updated_at=days_ago(5))

    stale = await job_store.find_stale_older_than(timedelta(days=30))

    assert {job.id for job in stale} == stale_ids


@pytest.mark.asyncio
async def test_find_stuck_only_processing(job_store, make_job):
    stuck = await make_job(status="processing", updated_at=days_ago(1))
    await make_job(status="processing")
    await make_job(status="pending", updated_at=days_ago(1))

    found = await job_store.find_stuck_older_than(timedelta(hours=1))

    assert [job.id for job in found] == [stuck.id]


@pytest.mark.asyncio
async def test_delete_by_ids(job_store, make_job):
    doomed = await make_job()
    kept = await make_job()

    assert await job_store.delete_by_ids([]) == 0
    assert await job_store.delete_by_ids([doomed.id]) == 1
    assert await job_store.get(doomed.id) is None
    assert await job_store.get(kept.id) is not None


@pytest.mark.asyncio
async def test_purge_stale_jobs_is_idempotent(job_store, make_job):
    await make_job(status="done", updated_at=days_ago(31))
    await make_job(status="failed", updated_at=days_ago(60))
    fresh = await make_job(status="done", updated_at=days_ago(29))

    assert await purge_stale_jobs(job_store, timedelta(days=30)) == 2
    assert await purge_stale_jobs(job_store, timedelta(days=30)) == 0
    assert await job_store.get(fresh.id) is not None


class TestTransition:
    @pytest.mark.asyncio
    async def test_applies_when_status_matches(self, job_store, make_job):
        job = await make_job()

        claimed = await job_store.transition(job.id, JobStatus.PENDING, JobStatus.PROCESSING)

        assert claimed is not None
        assert claimed.status == "processing"

    @pytest.mark.asyncio
    async def test_second_claim_loses(self, job_store, make_job):
        """Only one of two overlapping claims on the same job applies."""
        job = await make_job()

        first = await job_store.transition(job.id, JobStatus.PENDING, JobStatus.PROCESSING)
        second = await job_store.transition(job.id, JobStatus.PENDING, JobStatus.PROCESSING)

        assert first is not None
        assert second is None

    @pytest.mark.asyncio
    async def test_extra_values_and_criteria(self, job_store, make_job):
        job = await make_job(status="processing", attempts=2)

        failed = await job_store.transition(
            job.id,
            JobStatus.PROCESSING,
            JobStatus.FAILED,
            attempts=BackgroundJob.attempts + 1,
            last_error="boom",
        )
        assert failed.attempts == 3
        assert failed.last_error == "boom"

        # attempts == max_attempts, the retry criterion no longer holds
        requeued = await job_store.transition(
            job.id,
            JobStatus.FAILED,
            JobStatus.PENDING,
            BackgroundJob.attempts < BackgroundJob.max_attempts,
        )
        assert requeued is None

    @pytest.mark.asyncio
    async def test_illegal_transition_raises(self, job_store, make_job):
        job = await make_job(status="done")

        with pytest.raises(InvalidJobTransitionError):
            await job_store.transition(job.id, JobStatus.DONE, JobStatus.PENDING)

    @pytest.mark.asyncio
    async def test_missing_job_returns_none(self, job_store):
        assert (
            await job_store.transition(uuid4(), JobStatus.PENDING, JobStatus.PROCESSING)
            is None
        )


@pytest.mark.asyncio
async def test_list_jobs_filters(job_store, make_job):
    await make_job(job_type="email_send")
    await make_job(job_type="email_send", status="done")
    await make_job(job_type="webhook_call")

    emails = await job_store.list_jobs(JobListFilters(job_type="email_send"))
    done = await job_store.list_jobs(JobListFilters(status=JobStatus.DONE))
    limited = await job_store.list_jobs(JobListFilters(limit=2))

    assert len(emails) == 2
    assert [job.status for job in done] == ["done"]
    assert len(limited) == 2


@pytest.mark.asyncio
async def test_grouped_counts(job_store, make_job):
    await make_job(job_type="email_send")
    await make_job(job_type="email_send", status="failed", attempts=1)
    await make_job(job_type="webhook_call", status="done")

    assert await job_store.count_by_status() == {"pending": 1, "failed": 1, "done": 1}
    assert await job_store.count_by_type() == {"email_send": 2, "webhook_call": 1}
