"""Job Commands - Submit, inspect and re-run background jobs"""

import json
from uuid import UUID

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel

from hubz.v1.core.exceptions import HubzException
from hubz.v1.infra.jobs.models import JobStatus
from hubz.v1.infra.jobs.schemas import JobCreate, JobResponse

from ..utils.formatting import (
    create_jobs_table,
    create_stats_table,
    display_job,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from ..utils.runtime import run_with_runtime

console = Console()


def enqueue(
    job_type: str = typer.Option(..., "--type", "-t", help="Job type, e.g. email_send"),
    payload: str = typer.Option("{}", "--payload", "-p", help="Job payload as JSON"),
    max_attempts: int | None = typer.Option(
        None, "--max-attempts", help="Override the default retry ceiling"
    ),
):
    """➕ Enqueue a new background job"""
    try:
        job_create = JobCreate(
            job_type=job_type, payload=json.loads(payload), max_attempts=max_attempts
        )
    except json.JSONDecodeError as e:
        print_error(f"Payload is not valid JSON: {e}")
        raise typer.Exit(1) from None
    except ValidationError as e:
        print_error(f"Invalid job: {e.errors()[0]['msg']}")
        raise typer.Exit(1) from None

    job = run_with_runtime(lambda runtime: runtime.job_service.enqueue_job(job_create))
    print_success(f"Job enqueued: {job.id} ({job.job_type})")


def list_jobs(
    status: JobStatus | None = typer.Option(None, "--status", "-s", help="Filter by status"),
    job_type: str | None = typer.Option(None, "--type", "-t", help="Filter by job type"),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of jobs to show"),
    offset: int = typer.Option(0, "--offset", "-o", help="Skip first N jobs"),
):
    """📋 List background jobs, newest first"""
    jobs = run_with_runtime(
        lambda runtime: runtime.job_service.list_jobs(
            status=status, job_type=job_type, limit=limit, offset=offset
        )
    )

    if not jobs:
        console.print(Panel(
            "📭 [yellow]No jobs found![/yellow]\n\n"
            f"Filters applied:\n"
            f"• Status: {status.value if status else 'any'}\n"
            f"• Type: {job_type or 'any'}",
            title="Empty Results",
            border_style="yellow"
        ))
        return

    console.print(create_jobs_table([JobResponse.model_validate(job) for job in jobs]))
    if len(jobs) == limit:
        console.print(f"💡 Use [cyan]--offset {offset + limit}[/cyan] to see more")


def show(job_id: UUID = typer.Argument(..., help="Job ID to show")):
    """🔍 Show one job in detail"""
    try:
        job = run_with_runtime(lambda runtime: runtime.job_service.get_job(job_id))
    except HubzException as e:
        print_error(e.message)
        raise typer.Exit(1) from None

    display_job(JobResponse.model_validate(job))


def stats():
    """📊 Show queue statistics"""
    job_stats = run_with_runtime(lambda runtime: runtime.job_service.get_job_stats())
    console.print(create_stats_table(job_stats))

    if job_stats.abandoned:
        print_warning(f"{job_stats.abandoned} job(s) exhausted their retries")


def retry(job_id: UUID = typer.Argument(..., help="Failed job to re-queue")):
    """🔁 Re-queue a failed job that still has attempts left"""
    try:
        job = run_with_runtime(lambda runtime: runtime.engine.retry_job(job_id))
    except HubzException as e:
        print_error(e.message)
        raise typer.Exit(1) from None

    print_success(f"Job re-queued: {job.id} (attempts {job.attempts}/{job.max_attempts})")


def execute(job_id: UUID = typer.Argument(..., help="Pending job to run now")):
    """▶️ Run one pending job immediately"""
    print_info(f"Executing job {job_id}")
    try:
        job = run_with_runtime(lambda runtime: runtime.engine.execute_job(job_id))
    except HubzException as e:
        print_error(e.message)
        raise typer.Exit(1) from None

    if job.status == JobStatus.DONE.value:
        print_success(f"Job completed: {job.id}")
    else:
        print_error(f"Job failed: {job.last_error}")
        raise typer.Exit(1)
