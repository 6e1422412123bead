"""Trigger Commands - Fire scheduled work by hand or run the scheduler"""

import asyncio
from datetime import datetime

import typer
from rich.console import Console

from hubz.infra.database import Base
from hubz.v1.infra.batch import BatchRunResult
from hubz.v1.notifications.sources import workspace_metadata
from hubz.v1.runtime import BackgroundRuntime

from ..utils.formatting import (
    create_batch_result_panel,
    create_triggers_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from ..utils.runtime import run_with_runtime

console = Console()


def run(name: str = typer.Argument(..., help="Trigger name, e.g. process-jobs")):
    """▶️ Fire one trigger now and wait for it to finish"""

    async def _fire(runtime: BackgroundRuntime):
        return await runtime.scheduler.fire(name)

    print_info(f"Firing trigger: {name}")
    try:
        result = run_with_runtime(_fire)
    except KeyError:
        print_error(f"Unknown trigger: {name}")
        raise typer.Exit(1) from None

    if result is None:
        print_warning("Trigger failed or was skipped, see the logs for details")
        raise typer.Exit(1)

    if isinstance(result, BatchRunResult):
        console.print(create_batch_result_panel(result))
    else:
        print_success(f"{name} finished: {result} job(s) affected")


def goal_deadlines(
    on: datetime | None = typer.Option(
        None, "--date", formats=["%Y-%m-%d"], help="Reference date, defaults to today"
    ),
):
    """🎯 Check goal deadlines now, optionally as of another date"""

    async def _check(runtime: BackgroundRuntime):
        if on is None:
            return await runtime.goal_deadline_batch.run()
        return await runtime.goal_deadline_batch.run_for_date(on.date())

    result = run_with_runtime(_check)
    console.print(create_batch_result_panel(result))


def schedule():
    """⏰ Run the scheduler in the foreground until interrupted"""

    async def _serve(runtime: BackgroundRuntime):
        console.print(create_triggers_table(runtime.scheduler.describe()))
        print_success("Scheduler running, press Ctrl+C to stop")
        await asyncio.Event().wait()

    try:
        run_with_runtime(_serve, start_scheduler=True)
    except KeyboardInterrupt:
        print_info("Scheduler stopped")


def triggers():
    """📅 List registered triggers and their next run time"""

    async def _describe(runtime: BackgroundRuntime):
        return runtime.scheduler.describe()

    console.print(create_triggers_table(run_with_runtime(_describe)))


def init_db(
    workspace: bool = typer.Option(
        False, "--workspace", help="Also create the workspace read tables (local runs only)"
    ),
):
    """🗄️ Create the tables used by background processing"""

    async def _create(runtime: BackgroundRuntime):
        metadata = [Base.metadata]
        if workspace:
            metadata.append(workspace_metadata)
        await runtime.database.create_all(*metadata)

    run_with_runtime(_create)
    print_success("Database tables created")
