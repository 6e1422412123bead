"""Rich Formatting Utilities for CLI Output"""

from datetime import datetime
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from hubz.v1.infra.batch import BatchRunResult
from hubz.v1.infra.jobs.schemas import JobResponse, JobStatsResponse

console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "processing": "blue",
    "done": "green",
    "failed": "red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def _format_time(value: datetime | None) -> str:
    if value is None:
        return "—"
    return value.strftime("%Y-%m-%d %H:%M:%S")


def _status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def create_jobs_table(jobs: list[JobResponse]) -> Table:
    """Create a formatted table for a job listing"""
    table = Table(title="Background Jobs", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Attempts", justify="center")
    table.add_column("Updated", justify="center", style="yellow")
    table.add_column("Last Error", justify="left", style="white")

    for job in jobs:
        error = job.last_error or "—"
        table.add_row(
            str(job.id)[:8],  # Short ID
            job.job_type,
            _status(job.status),
            f"{job.attempts}/{job.max_attempts}",
            _format_time(job.updated_at),
            error if len(error) <= 60 else error[:57] + "...",
        )

    return table


def display_job(job: JobResponse) -> None:
    """Show every field of one job"""
    content = (
        f"🆔 [bold]ID:[/bold] [cyan]{job.id}[/cyan]\n"
        f"📝 [bold]Type:[/bold] [magenta]{job.job_type}[/magenta]\n"
        f"✅ [bold]Status:[/bold] {_status(job.status)}\n"
        f"🔁 [bold]Attempts:[/bold] {job.attempts}/{job.max_attempts}\n"
        f"📅 [bold]Created:[/bold] {_format_time(job.created_at)}\n"
        f"🕒 [bold]Updated:[/bold] {_format_time(job.updated_at)}\n"
        f"🏁 [bold]Executed:[/bold] {_format_time(job.executed_at)}"
    )
    if job.last_error:
        content += f"\n⚠️ [bold]Last error:[/bold] [red]{job.last_error}[/red]"

    console.print(Panel(content, title="Job", border_style="blue"))
    console.print(f"\n📦 [bold]Payload:[/bold] {job.payload}")


def create_triggers_table(triggers: list[dict[str, Any]]) -> Table:
    """Create a formatted table for registered triggers"""
    table = Table(title="Triggers", box=box.ROUNDED)

    table.add_column("Name", justify="left", style="cyan", no_wrap=True)
    table.add_column("Kind", justify="center", style="magenta")
    table.add_column("Schedule", justify="left", style="green")
    table.add_column("Serialized", justify="center")
    table.add_column("Next Run", justify="center", style="yellow")

    for trigger in triggers:
        table.add_row(
            trigger["name"],
            trigger["kind"],
            trigger["schedule"],
            "yes" if trigger["serialized"] else "no",
            _format_time(trigger.get("next_run_time")),
        )

    return table


def create_batch_result_panel(result: BatchRunResult) -> Panel:
    """Summarize one batch run"""
    content = (
        f"✅ [bold]Succeeded:[/bold] [green]{result.success_count}[/green]\n"
        f"⏭️ [bold]Skipped:[/bold] [yellow]{result.skipped_count}[/yellow]\n"
        f"❌ [bold]Failed:[/bold] [red]{result.failure_count}[/red]\n"
        f"📊 [bold]Total:[/bold] {result.total}"
    )
    if result.failed_subjects:
        content += "\n\nFailed: " + ", ".join(result.failed_subjects)

    border_style = "red" if result.failure_count else "green"
    return Panel(content, title=f"Batch: {result.name}", border_style=border_style)


def create_stats_table(stats: JobStatsResponse) -> Table:
    """Create a formatted table for queue statistics"""
    table = Table(title="Job Statistics", box=box.ROUNDED)

    table.add_column("Metric", justify="left", style="cyan")
    table.add_column("Value", justify="right", style="white")

    table.add_row("Total jobs", str(stats.total_jobs))
    table.add_row("Queue depth", str(stats.queue_depth))
    table.add_row("Abandoned", str(stats.abandoned))
    for status, count in sorted(stats.by_status.items()):
        table.add_row(f"Status: {status}", str(count))
    for job_type, count in sorted(stats.by_type.items()):
        table.add_row(f"Type: {job_type}", str(count))

    return table
