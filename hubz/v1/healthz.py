from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel
from sqlalchemy import text

from hubz.config.logging import get_logger
from hubz.v1.core.exceptions import create_success_response
from hubz.v1.runtime import BackgroundRuntime

logger = get_logger(__name__)

router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class TriggerHealth(BaseModel):
    name: str
    kind: str
    schedule: str
    serialized: bool
    next_run_time: datetime | None = None


class SchedulerHealth(BaseModel):
    """Scheduler state and queue status."""

    running: bool
    triggers: list[TriggerHealth]
    queue_depth: int = 0
    abandoned_jobs: int = 0


@router.get("/healthz", response_model=dict)
async def health_check(request: Request):
    """Health check with database connectivity, scheduler state and queue depth."""
    runtime: BackgroundRuntime = request.app.state.runtime
    settings = runtime.settings

    db_health = await _check_database_health(runtime)
    scheduler_health = await _check_scheduler_health(runtime)

    health_data = {
        "ok": db_health.connected,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": datetime.now(UTC).isoformat(),
        "database": db_health.model_dump(),
        "scheduler": scheduler_health.model_dump(mode="json"),
    }

    return create_success_response(data=health_data)


async def _check_database_health(runtime: BackgroundRuntime) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        async with runtime.database.session() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Database health check failed", error=str(e))
        return DatabaseHealth(connected=False, error=str(e))

    response_time_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
    return DatabaseHealth(connected=True, response_time_ms=round(response_time_ms, 2))


async def _check_scheduler_health(runtime: BackgroundRuntime) -> SchedulerHealth:
    triggers = [TriggerHealth(**trigger) for trigger in runtime.scheduler.describe()]

    queue_depth = abandoned = 0
    try:
        stats = await runtime.job_service.get_job_stats()
        queue_depth, abandoned = stats.queue_depth, stats.abandoned
    except Exception as e:
        # Queue stats are informational, the database check reports the outage
        logger.warning("Job stats unavailable for health check", error=str(e))

    return SchedulerHealth(
        running=runtime.scheduler.running,
        triggers=triggers,
        queue_depth=queue_depth,
        abandoned_jobs=abandoned,
    )
