import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock

import pytest

from hubz.v1.infra.jobs.schemas import JobCreate
from hubz.v1.infra.scheduler import (
    CalendarTrigger,
    IntervalTrigger,
    TriggerDefinition,
    TriggerScheduler,
)
from hubz.v1.runtime import background_runtime

# Monday 2026-10-19, 10:00 UTC
NOW = datetime(2026, 10, 19, 10, 0, tzinfo=UTC)


@pytest.fixture
def scheduler(settings):
    scheduler = TriggerScheduler(settings)
    yield scheduler
    scheduler.shutdown()


def definition(name, handler, trigger=None, serialized=False) -> TriggerDefinition:
    return TriggerDefinition(
        name, trigger or IntervalTrigger(60), handler, f"{name} trigger", serialized=serialized
    )


class TestRegistration:
    def test_register_and_describe(self, scheduler):
        async def handler():
            return 1

        scheduler.register(definition("every-minute", handler))
        scheduler.register(definition("nightly", handler, CalendarTrigger("0 3 * * *")))

        assert scheduler.names() == ["every-minute", "nightly"]
        described = scheduler.describe()
        assert described[0]["kind"] == "interval"
        assert described[0]["schedule"] == "every 60s"
        assert described[1]["kind"] == "calendar"
        assert described[1]["schedule"] == "0 3 * * *"
        assert described[1]["next_run_time"] is not None

    def test_duplicate_name_rejected(self, scheduler):
        async def handler():
            return None

        scheduler.register(definition("dup", handler))
        with pytest.raises(ValueError, match="Trigger already registered: dup"):
            scheduler.register(definition("dup", handler))

    def test_unknown_trigger(self, scheduler):
        with pytest.raises(KeyError, match="No trigger registered with name: nope"):
            scheduler.get("nope")


class TestFire:
    @pytest.mark.asyncio
    async def test_returns_handler_result(self, scheduler):
        async def handler():
            return 42

        scheduler.register(definition("answer", handler))

        assert await scheduler.fire("answer") == 42

    @pytest.mark.asyncio
    async def test_handler_error_is_contained(self, scheduler):
        calls = []

        async def handler():
            calls.append(1)
            raise RuntimeError("database unavailable")

        scheduler.register(definition("flaky", handler))

        assert await scheduler.fire("flaky") is None
        # the trigger keeps firing after a failure
        assert await scheduler.fire("flaky") is None
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_serialized_trigger_skips_overlapping_fire(self, scheduler):
        release = asyncio.Event()
        calls = []

        async def slow_handler():
            calls.append(1)
            await release.wait()
            return "done"

        scheduler.register(definition("slow", slow_handler, serialized=True))

        first = asyncio.create_task(scheduler.fire("slow"))
        await asyncio.sleep(0)
        assert await scheduler.fire("slow") is None

        release.set()
        assert await first == "done"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_unserialized_trigger_may_overlap(self, scheduler):
        release = asyncio.Event()
        calls = []

        async def slow_handler():
            calls.append(1)
            await release.wait()

        scheduler.register(definition("parallel", slow_handler))

        tasks = [asyncio.create_task(scheduler.fire("parallel")) for _ in range(2)]
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(*tasks)

        assert len(calls) == 2


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_shutdown(self, scheduler):
        async def handler():
            return None

        scheduler.register(definition("tick", handler))
        scheduler.start()

        assert scheduler.running
        job = scheduler.scheduler.get_job("tick")
        assert job.max_instances == scheduler.settings.scheduler_max_instances
        assert job.coalesce is True
        assert scheduler.next_fire_time("tick") is not None

        scheduler.shutdown()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_register_after_start(self, scheduler):
        async def handler():
            return None

        scheduler.start()
        scheduler.register(definition("late", handler))

        assert scheduler.scheduler.get_job("late") is not None
        scheduler.shutdown()


class TestCalendarSchedules:
    @pytest.mark.parametrize(
        "crontab,expected",
        [
            ("0 3 * * *", datetime(2026, 10, 20, 3, 0, tzinfo=UTC)),
            ("0 8 * * *", datetime(2026, 10, 20, 8, 0, tzinfo=UTC)),
            ("0 9 * * mon", datetime(2026, 10, 26, 9, 0, tzinfo=UTC)),
        ],
    )
    def test_next_fire_time(self, scheduler, crontab, expected):
        async def handler():
            return None

        scheduler.register(definition("calendar", handler, CalendarTrigger(crontab)))

        assert scheduler.next_fire_time("calendar", now=NOW) == expected


class TestRuntimeTriggers:
    @pytest.mark.asyncio
    async def test_runtime_registers_all_triggers(self, settings, database, email_sender):
        async with background_runtime(
            settings, database=database, email_sender=email_sender
        ) as runtime:
            assert runtime.scheduler.names() == [
                "process-jobs",
                "retry-jobs",
                "recover-stuck-jobs",
                "cleanup-jobs",
                "deadline-reminders",
                "weekly-digest",
                "goal-deadlines",
            ]
            assert runtime.scheduler.get("process-jobs").serialized
            assert not runtime.scheduler.running
            assert runtime.job_registry.is_frozen()

    @pytest.mark.asyncio
    async def test_fire_process_jobs_end_to_end(self, settings, database, email_sender):
        async with background_runtime(
            settings, database=database, email_sender=email_sender
        ) as runtime:
            job = await runtime.job_service.enqueue_job(
                JobCreate(
                    job_type="email_send",
                    payload={
                        "email_type": "welcome",
                        "to": "ada@example.com",
                        "subject": "Welcome",
                    },
                )
            )

            result = await runtime.scheduler.fire("process-jobs")

            assert result.success_count == 1
            assert (await runtime.job_service.get_job(job.id)).status == "done"
            assert email_sender.sent[0].to == "ada@example.com"

    @pytest.mark.asyncio
    async def test_notification_triggers_with_no_users(self, settings, database, email_sender):
        async with background_runtime(
            settings, database=database, email_sender=email_sender
        ) as runtime:
            reminders = await runtime.scheduler.fire("deadline-reminders")
            digest = await runtime.scheduler.fire("weekly-digest")
            goal_deadlines = await runtime.scheduler.fire("goal-deadlines")

        assert reminders.total == 0
        assert digest.total == 0
        assert goal_deadlines.total == 0


class TestRuntimeLifecycle:
    @pytest.mark.asyncio
    async def test_database_passed_in_is_left_open(
        self, settings, database, email_sender, monkeypatch
    ):
        close = AsyncMock()
        monkeypatch.setattr(database, "close", close)

        async with background_runtime(settings, database=database, email_sender=email_sender):
            pass

        close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_database_created_by_runtime_is_closed(
        self, settings, database, email_sender, monkeypatch
    ):
        owned = Mock(SessionLocal=database.SessionLocal, close=AsyncMock())
        monkeypatch.setattr("hubz.v1.runtime.Database", Mock(return_value=owned))

        async with background_runtime(settings, email_sender=email_sender) as runtime:
            assert runtime.database is owned

        owned.close.assert_awaited_once()
