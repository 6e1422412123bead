"""Hubz Jobs CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

from hubz.config.logging import setup_logging
from hubz.config.settings import get_settings

# Import command modules
from .commands import jobs, triggers

console = Console()

# Create main Typer app
app = typer.Typer(
    name="hubz-jobs",
    help="⚙️ Hubz background jobs and scheduled batches",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

# Scheduling
app.command("run")(triggers.run)
app.command("goal-deadlines")(triggers.goal_deadlines)
app.command("schedule")(triggers.schedule)
app.command("triggers")(triggers.triggers)
app.command("init-db")(triggers.init_db)

# Jobs
app.command("enqueue")(jobs.enqueue)
app.command("list")(jobs.list_jobs)
app.command("show")(jobs.show)
app.command("stats")(jobs.stats)
app.command("retry")(jobs.retry)
app.command("execute")(jobs.execute)


@app.command()
def version():
    """📎 Show version information"""
    settings = get_settings()
    console.print(Panel(
        f"⚙️ [bold cyan]{settings.app_name}[/bold cyan]\n\n"
        f"• Version: [green]{settings.version}[/green]\n"
        f"• Environment: [yellow]{settings.environment}[/yellow]",
        title="Version Info",
        border_style="cyan"
    ))


@app.callback()
def main():
    """
    ⚙️ Hubz Jobs CLI

    Enqueue and inspect background jobs, fire scheduled triggers by hand, or run
    the scheduler in the foreground.
    """
    setup_logging(get_settings())


if __name__ == "__main__":
    app()
