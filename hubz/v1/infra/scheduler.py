"""
Trigger scheduler: owns all recurring timing for background work.

Triggers are either fixed intervals or calendar (crontab) schedules; both kinds
run on one APScheduler AsyncIOScheduler. Every fire goes through
``TriggerScheduler.fire``, which isolates handler errors so that one failing
schedule never stops itself or any other trigger from firing again.
"""

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger as APIntervalTrigger

from hubz.config.logging import get_logger
from hubz.config.settings import Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class IntervalTrigger:
    seconds: int

    kind = "interval"

    @property
    def schedule(self) -> str:
        return f"every {self.seconds}s"


@dataclass(frozen=True)
class CalendarTrigger:
    crontab: str

    kind = "calendar"

    @property
    def schedule(self) -> str:
        return self.crontab


Schedule = IntervalTrigger | CalendarTrigger


@dataclass(frozen=True)
class TriggerDefinition:
    name: str
    trigger: Schedule
    handler: Callable[[], Awaitable[Any]]
    description: str = ""
    serialized: bool = False


def to_apscheduler_trigger(schedule: Schedule, timezone: str) -> BaseTrigger:
    if isinstance(schedule, IntervalTrigger):
        return APIntervalTrigger(seconds=schedule.seconds, timezone=timezone)
    return CronTrigger.from_crontab(schedule.crontab, timezone=timezone)


class TriggerScheduler:
    """
    Registry of named triggers plus the APScheduler instance that fires them.

    Features:
    - ``fire(name)`` runs a trigger once, directly awaitable from tests and the CLI
    - handler errors are logged with the trigger name and swallowed
    - serialized triggers skip a fire while their previous run is still going
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.scheduler: AsyncIOScheduler | None = None
        self._triggers: dict[str, TriggerDefinition] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def register(self, definition: TriggerDefinition) -> None:
        if definition.name in self._triggers:
            raise ValueError(f"Trigger already registered: {definition.name}")

        self._triggers[definition.name] = definition
        if definition.serialized:
            self._locks[definition.name] = asyncio.Lock()
        if self.running:
            self._add_job(definition)

        logger.debug(
            "Registered trigger",
            trigger=definition.name,
            kind=definition.trigger.kind,
            schedule=definition.trigger.schedule,
        )

    def names(self) -> list[str]:
        return list(self._triggers)

    def get(self, name: str) -> TriggerDefinition:
        if name not in self._triggers:
            raise KeyError(f"No trigger registered with name: {name}")
        return self._triggers[name]

    async def fire(self, name: str) -> Any | None:
        """
        Run one trigger now.

        Returns the handler result, or None when the handler raised or the
        fire was skipped because a serialized trigger was still running.
        """
        definition = self.get(name)
        lock = self._locks.get(name)

        if lock is not None and lock.locked():
            logger.warning("Trigger still running, skipping fire", trigger=name)
            return None

        with structlog.contextvars.bound_contextvars(trigger=name):
            started = datetime.now(UTC)
            try:
                async with lock or nullcontext():
                    result = await definition.handler()
            except Exception as e:
                logger.exception(
                    "Trigger handler failed",
                    trigger=name,
                    error=str(e),
                    exception=e.__class__.__name__,
                )
                return None

            logger.info(
                "Trigger finished",
                trigger=name,
                duration_ms=int((datetime.now(UTC) - started).total_seconds() * 1000),
            )
            return result

    def start(self) -> None:
        """Start firing registered triggers. Must be called from a running event loop."""
        if self.running:
            logger.warning("Trigger scheduler already started")
            return

        self.scheduler = AsyncIOScheduler(timezone=self.settings.scheduler_timezone)
        for definition in self._triggers.values():
            self._add_job(definition)
        self.scheduler.start()

        logger.info("Trigger scheduler started", triggers=self.names())

    def shutdown(self) -> None:
        if self.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Trigger scheduler stopped")
        self.scheduler = None

    def next_fire_time(self, name: str, now: datetime | None = None) -> datetime | None:
        """Next fire of a trigger: from the live scheduler when running, else computed."""
        definition = self.get(name)

        if self.running:
            job = self.scheduler.get_job(name)
            return getattr(job, "next_run_time", None)

        now = now or datetime.now(UTC)
        trigger = to_apscheduler_trigger(definition.trigger, self.settings.scheduler_timezone)
        return trigger.get_next_fire_time(None, now)

    def describe(self) -> list[dict[str, Any]]:
        return [
            {
                "name": definition.name,
                "kind": definition.trigger.kind,
                "schedule": definition.trigger.schedule,
                "serialized": definition.serialized,
                "description": definition.description,
                "next_run_time": self.next_fire_time(definition.name),
            }
            for definition in self._triggers.values()
        ]

    def _add_job(self, definition: TriggerDefinition) -> None:
        self.scheduler.add_job(
            self.fire,
            trigger=to_apscheduler_trigger(
                definition.trigger, self.settings.scheduler_timezone
            ),
            args=[definition.name],
            id=definition.name,
            name=definition.description or definition.name,
            replace_existing=True,
            max_instances=self.settings.scheduler_max_instances,
            coalesce=True,
            misfire_grace_time=self.settings.scheduler_misfire_grace_s,
        )
