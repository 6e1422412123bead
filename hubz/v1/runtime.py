"""
Background runtime: everything the scheduled work needs, wired together.

A runtime is a scoped resource: it is built when the process starts (FastAPI
lifespan or CLI command) and closed on exit, so tests can build one per test
and fire triggers directly without any global state.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from hubz.config.logging import get_logger
from hubz.config.settings import Settings
from hubz.infra.database import Database
from hubz.v1.core.registries import EmailSender, JobRegistry
from hubz.v1.infra.jobs.engine import JobEngine
from hubz.v1.infra.jobs.registry_init import register_job_handlers
from hubz.v1.infra.jobs.service import JobService
from hubz.v1.infra.jobs.store import SqlAlchemyJobStore
from hubz.v1.infra.scheduler import (
    CalendarTrigger,
    IntervalTrigger,
    TriggerDefinition,
    TriggerScheduler,
)
from hubz.v1.notifications.batches import (
    NotificationBatch,
    deadline_reminder_batch,
    weekly_digest_batch,
)
from hubz.v1.notifications.delivery import build_email_sender
from hubz.v1.notifications.digest import WeeklyDigestGenerator
from hubz.v1.notifications.goal_deadlines import (
    GoalDeadlineBatch,
    SqlAlchemyGoalNoticeStore,
)
from hubz.v1.notifications.preferences import SqlAlchemyPreferenceStore
from hubz.v1.notifications.reminders import DeadlineReminderGenerator
from hubz.v1.notifications.sources import (
    SqlActivitySource,
    SqlDeadlineSource,
    SqlGoalSource,
    SqlRecipientDirectory,
)

logger = get_logger(__name__)


class BackgroundRuntime:
    def __init__(
        self,
        settings: Settings,
        database: Database | None = None,
        email_sender: EmailSender | None = None,
    ):
        self.settings = settings
        # A database passed in belongs to the caller and is left open on close
        self._owns_database = database is None
        self.database = database or Database(settings)
        self.email_sender = email_sender or build_email_sender(settings)

        session_factory = self.database.SessionLocal
        self.job_store = SqlAlchemyJobStore(session_factory)
        self.preference_store = SqlAlchemyPreferenceStore(session_factory)
        recipients = SqlRecipientDirectory(session_factory)

        self.job_registry = register_job_handlers(
            JobRegistry(), job_store=self.job_store, email_sender=self.email_sender
        )
        # Registry frozen outside development
        if settings.environment != "development":
            self.job_registry.freeze()

        self.job_service = JobService(settings, self.job_store)
        self.engine = JobEngine(settings, self.job_store, self.job_registry)

        self.reminder_batch: NotificationBatch = deadline_reminder_batch(
            self.preference_store,
            DeadlineReminderGenerator(
                SqlDeadlineSource(session_factory), recipients, self.email_sender
            ),
        )
        self.digest_batch: NotificationBatch = weekly_digest_batch(
            self.preference_store,
            WeeklyDigestGenerator(
                SqlActivitySource(session_factory), recipients, self.email_sender
            ),
        )
        self.goal_deadline_batch = GoalDeadlineBatch(
            SqlGoalSource(session_factory),
            SqlAlchemyGoalNoticeStore(session_factory),
            recipients,
            self.email_sender,
            timezone=settings.scheduler_timezone,
        )

        self.scheduler = TriggerScheduler(settings)
        self._register_triggers()

    def _register_triggers(self) -> None:
        settings = self.settings
        for definition in (
            TriggerDefinition(
                "process-jobs",
                IntervalTrigger(settings.job_processing_interval_s),
                self.engine.process_pending_jobs,
                "Process pending background jobs",
                serialized=settings.job_processing_serialized,
            ),
            TriggerDefinition(
                "retry-jobs",
                IntervalTrigger(settings.job_retry_interval_s),
                self.engine.retry_failed_jobs,
                "Re-queue failed jobs with attempts left",
            ),
            TriggerDefinition(
                "recover-stuck-jobs",
                IntervalTrigger(settings.job_retry_interval_s),
                self.engine.recover_stuck_jobs,
                "Fail jobs left processing past the timeout",
            ),
            TriggerDefinition(
                "cleanup-jobs",
                CalendarTrigger(settings.job_cleanup_cron),
                self.engine.cleanup_old_jobs,
                "Delete jobs past the retention window",
            ),
            TriggerDefinition(
                "deadline-reminders",
                CalendarTrigger(settings.deadline_reminder_cron),
                self.reminder_batch.run,
                "Send deadline reminder emails",
            ),
            TriggerDefinition(
                "weekly-digest",
                CalendarTrigger(settings.weekly_digest_cron),
                self.digest_batch.run,
                "Send the weekly digest emails",
            ),
            TriggerDefinition(
                "goal-deadlines",
                CalendarTrigger(settings.goal_deadline_cron),
                self.goal_deadline_batch.run,
                "Notify goal owners 7, 3 and 1 day(s) before a deadline",
                serialized=True,
            ),
        ):
            self.scheduler.register(definition)

    async def close(self) -> None:
        self.scheduler.shutdown()
        if self._owns_database:
            await self.database.close()


@asynccontextmanager
async def background_runtime(
    settings: Settings,
    *,
    start_scheduler: bool = False,
    database: Database | None = None,
    email_sender: EmailSender | None = None,
) -> AsyncIterator[BackgroundRuntime]:
    """Open a runtime, optionally starting the scheduler, and close it on exit."""
    runtime = BackgroundRuntime(settings, database=database, email_sender=email_sender)
    if start_scheduler:
        runtime.scheduler.start()

    logger.info(
        "Background runtime ready",
        scheduler_started=start_scheduler,
        job_handlers=runtime.job_registry.list(),
    )
    try:
        yield runtime
    finally:
        await runtime.close()
