from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import pytest

from hubz.config.settings import Settings
from hubz.infra.database import Base, Database
from hubz.v1.core.registries import JobRegistry
from hubz.v1.infra.jobs.engine import JobEngine
from hubz.v1.infra.jobs.models import BackgroundJob, JobStatus
from hubz.v1.infra.jobs.store import SqlAlchemyJobStore
from hubz.v1.notifications import models as notification_models  # noqa: F401
from hubz.v1.notifications.sources import workspace_metadata


class RecordingEmailSender:
    """Email sender that keeps messages instead of delivering them."""

    def __init__(self):
        self.sent = []

    async def send(self, message) -> None:
        self.sent.append(message)


class RecordingHandler:
    """Job handler that records payloads and optionally fails."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.payloads: list[dict[str, Any]] = []

    async def execute(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return {"ok": True}


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite database."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'hubz-test.db'}",
        debug=False,
        environment="test",
        scheduler_enabled=False,
    )


@pytest.fixture
async def database(settings) -> AsyncGenerator[Database, None]:
    """Database with the job, preference and workspace tables created."""
    db = Database(settings)
    await db.create_all(Base.metadata, workspace_metadata)
    yield db
    await db.close()


@pytest.fixture
def job_store(database) -> SqlAlchemyJobStore:
    return SqlAlchemyJobStore(database.SessionLocal)


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def ok_handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def failing_handler() -> RecordingHandler:
    return RecordingHandler(error=RuntimeError("handler exploded"))


@pytest.fixture
def make_handler():
    """Factory for extra handlers registered by individual tests."""
    return RecordingHandler


@pytest.fixture
def job_registry(ok_handler, failing_handler) -> JobRegistry:
    registry = JobRegistry()
    registry.register("ok", ok_handler)
    registry.register("boom", failing_handler)
    return registry


@pytest.fixture
def engine(settings, job_store, job_registry) -> JobEngine:
    return JobEngine(settings, job_store, job_registry)


@pytest.fixture
def make_job(job_store):
    """Factory saving a job with sensible defaults."""

    async def _make_job(**overrides) -> BackgroundJob:
        now = datetime.now(UTC)
        values = {
            "id": uuid4(),
            "job_type": "ok",
            "payload": {},
            "status": JobStatus.PENDING.value,
            "attempts": 0,
            "max_attempts": 3,
            "created_at": now,
            "updated_at": now,
        }
        values.update(overrides)
        return await job_store.save(BackgroundJob(**values))

    return _make_job
