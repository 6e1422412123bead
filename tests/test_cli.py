"""Tests for CLI commands"""

from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, Mock, patch
from uuid import uuid4

import pytest
from typer.testing import CliRunner

from hubz.infra.database import Base
from hubz.v1.core.exceptions import JobNotFoundError, JobNotRetryableError
from hubz.v1.infra.batch import BatchRunResult
from hubz.v1.infra.jobs.models import BackgroundJob
from hubz.v1.infra.jobs.schemas import JobStatsResponse
from hubz.v1.notifications.sources import workspace_metadata
from hubz_cli.main import app


def make_job(**overrides) -> BackgroundJob:
    now = datetime.now(UTC)
    values = {
        "id": uuid4(),
        "job_type": "email_send",
        "payload": {"to": "ada@example.com"},
        "status": "pending",
        "attempts": 0,
        "max_attempts": 3,
        "last_error": None,
        "created_at": now,
        "updated_at": now,
        "executed_at": None,
    }
    values.update(overrides)
    return BackgroundJob(**values)


# Test fixtures
@pytest.fixture
def runner():
    """CLI test runner"""
    return CliRunner()


@pytest.fixture
def runtime():
    """Background runtime with every async dependency mocked"""
    runtime = Mock()
    runtime.job_service.enqueue_job = AsyncMock()
    runtime.job_service.list_jobs = AsyncMock(return_value=[])
    runtime.job_service.get_job = AsyncMock()
    runtime.job_service.get_job_stats = AsyncMock()
    runtime.engine.retry_job = AsyncMock()
    runtime.engine.execute_job = AsyncMock()
    runtime.scheduler.fire = AsyncMock()
    runtime.scheduler.describe = Mock(return_value=[])
    runtime.database.create_all = AsyncMock()
    runtime.goal_deadline_batch.run = AsyncMock()
    runtime.goal_deadline_batch.run_for_date = AsyncMock()

    @asynccontextmanager
    async def fake_background_runtime(settings, *, start_scheduler=False):
        yield runtime

    with patch("hubz_cli.utils.runtime.background_runtime", fake_background_runtime):
        yield runtime


class TestMainCommands:
    """Test main CLI commands"""

    def test_version(self, runner):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Hubz Background Jobs" in result.stdout
        assert "1.0.0" in result.stdout

    def test_no_args_shows_help(self, runner):
        result = runner.invoke(app, [])
        assert "enqueue" in result.stdout
        assert "schedule" in result.stdout


class TestJobCommands:
    """Test job commands"""

    def test_enqueue(self, runner, runtime):
        job = make_job()
        runtime.job_service.enqueue_job.return_value = job

        result = runner.invoke(
            app, ["enqueue", "--type", "email_send", "--payload", '{"to": "ada@example.com"}']
        )

        assert result.exit_code == 0
        assert f"Job enqueued: {job.id}" in result.stdout
        job_create = runtime.job_service.enqueue_job.await_args.args[0]
        assert job_create.job_type == "email_send"
        assert job_create.payload == {"to": "ada@example.com"}
        assert job_create.max_attempts is None

    def test_enqueue_invalid_json(self, runner, runtime):
        result = runner.invoke(app, ["enqueue", "--type", "email_send", "--payload", "{nope"])

        assert result.exit_code == 1
        assert "Payload is not valid JSON" in result.stdout
        runtime.job_service.enqueue_job.assert_not_awaited()

    def test_enqueue_blank_type(self, runner, runtime):
        result = runner.invoke(app, ["enqueue", "--type", "  "])

        assert result.exit_code == 1
        assert "Invalid job" in result.stdout

    def test_list_empty(self, runner, runtime):
        result = runner.invoke(app, ["list", "--status", "failed"])

        assert result.exit_code == 0
        assert "No jobs found!" in result.stdout
        filters = runtime.job_service.list_jobs.await_args.kwargs
        assert filters["status"].value == "failed"
        assert filters["limit"] == 20

    def test_list_jobs(self, runner, runtime):
        failed = make_job(job_type="webhook_call", status="failed", attempts=1, last_error="502")
        runtime.job_service.list_jobs.return_value = [make_job(), failed]

        result = runner.invoke(app, ["list"])

        assert result.exit_code == 0
        assert "Background Jobs" in result.stdout
        assert str(failed.id)[:8] in result.stdout

    def test_show(self, runner, runtime):
        job = make_job(status="failed", attempts=2, last_error="smtp down")
        runtime.job_service.get_job.return_value = job

        result = runner.invoke(app, ["show", str(job.id)])

        assert result.exit_code == 0
        assert str(job.id) in result.stdout
        assert "smtp down" in result.stdout

    def test_show_missing(self, runner, runtime):
        job_id = uuid4()
        runtime.job_service.get_job.side_effect = JobNotFoundError(job_id)

        result = runner.invoke(app, ["show", str(job_id)])

        assert result.exit_code == 1
        assert "Background job not found" in result.stdout

    def test_stats(self, runner, runtime):
        runtime.job_service.get_job_stats.return_value = JobStatsResponse(
            total_jobs=5,
            by_status={"pending": 2, "failed": 3},
            by_type={"email_send": 5},
            queue_depth=2,
            abandoned=1,
        )

        result = runner.invoke(app, ["stats"])

        assert result.exit_code == 0
        assert "Job Statistics" in result.stdout
        assert "1 job(s) exhausted their retries" in result.stdout

    def test_retry(self, runner, runtime):
        job = make_job(attempts=1)
        runtime.engine.retry_job.return_value = job

        result = runner.invoke(app, ["retry", str(job.id)])

        assert result.exit_code == 0
        assert "Job re-queued" in result.stdout

    def test_retry_not_retryable(self, runner, runtime):
        job_id = uuid4()
        runtime.engine.retry_job.side_effect = JobNotRetryableError(job_id, "failed", 3, 3)

        result = runner.invoke(app, ["retry", str(job_id)])

        assert result.exit_code == 1
        assert "Job cannot be retried" in result.stdout

    def test_execute_done(self, runner, runtime):
        job = make_job(status="done")
        runtime.engine.execute_job.return_value = job

        result = runner.invoke(app, ["execute", str(job.id)])

        assert result.exit_code == 0
        assert "Job completed" in result.stdout

    def test_execute_failed(self, runner, runtime):
        job = make_job(status="failed", attempts=1, last_error="handler exploded")
        runtime.engine.execute_job.return_value = job

        result = runner.invoke(app, ["execute", str(job.id)])

        assert result.exit_code == 1
        assert "Job failed: handler exploded" in result.stdout


class TestTriggerCommands:
    """Test trigger commands"""

    def test_run_batch_trigger(self, runner, runtime):
        runtime.scheduler.fire.return_value = BatchRunResult(
            name="deadline-reminders", success_count=2, skipped_count=1
        )

        result = runner.invoke(app, ["run", "deadline-reminders"])

        assert result.exit_code == 0
        assert "Batch: deadline-reminders" in result.stdout
        assert "Succeeded" in result.stdout
        runtime.scheduler.fire.assert_awaited_once_with("deadline-reminders")

    def test_run_count_trigger(self, runner, runtime):
        runtime.scheduler.fire.return_value = 3

        result = runner.invoke(app, ["run", "cleanup-jobs"])

        assert result.exit_code == 0
        assert "cleanup-jobs finished: 3 job(s) affected" in result.stdout

    def test_run_failed_trigger(self, runner, runtime):
        runtime.scheduler.fire.return_value = None

        result = runner.invoke(app, ["run", "weekly-digest"])

        assert result.exit_code == 1
        assert "Trigger failed or was skipped" in result.stdout

    def test_run_unknown_trigger(self, runner, runtime):
        runtime.scheduler.fire.side_effect = KeyError("nope")

        result = runner.invoke(app, ["run", "nope"])

        assert result.exit_code == 1
        assert "Unknown trigger: nope" in result.stdout

    def test_triggers(self, runner, runtime):
        runtime.scheduler.describe.return_value = [
            {
                "name": "process-jobs",
                "kind": "interval",
                "schedule": "every 60s",
                "serialized": True,
                "description": "Process pending background jobs",
                "next_run_time": datetime(2026, 10, 19, 10, 1, tzinfo=UTC),
            }
        ]

        result = runner.invoke(app, ["triggers"])

        assert result.exit_code == 0
        assert "process-jobs" in result.stdout
        assert "Triggers" in result.stdout

    def test_init_db(self, runner, runtime):
        result = runner.invoke(app, ["init-db"])

        assert result.exit_code == 0
        assert "Database tables created" in result.stdout
        runtime.database.create_all.assert_awaited_once_with(Base.metadata)

    def test_init_db_with_workspace(self, runner, runtime):
        result = runner.invoke(app, ["init-db", "--workspace"])

        assert result.exit_code == 0
        runtime.database.create_all.assert_awaited_once_with(
            Base.metadata, workspace_metadata
        )

    def test_goal_deadlines_today(self, runner, runtime):
        runtime.goal_deadline_batch.run.return_value = BatchRunResult(
            name="goal-deadlines", success_count=1
        )

        result = runner.invoke(app, ["goal-deadlines"])

        assert result.exit_code == 0
        assert "Batch: goal-deadlines" in result.stdout
        runtime.goal_deadline_batch.run.assert_awaited_once()
        runtime.goal_deadline_batch.run_for_date.assert_not_awaited()

    def test_goal_deadlines_for_date(self, runner, runtime):
        runtime.goal_deadline_batch.run_for_date.return_value = BatchRunResult(
            name="goal-deadlines", skipped_count=2
        )

        result = runner.invoke(app, ["goal-deadlines", "--date", "2026-12-01"])

        assert result.exit_code == 0
        runtime.goal_deadline_batch.run_for_date.assert_awaited_once_with(date(2026, 12, 1))
