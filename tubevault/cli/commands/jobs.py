"""
Job inspection CLI commands.

Read-only: these commands query the job store directly and never start a
fetch.
"""

import asyncio
import json
from typing import Awaitable, Callable, List, TypeVar

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ...config import settings
from ...config.logging_config import get_logger
from ...core.job_store import JobStore
from ...database.connection import DatabaseManager
from ...database.models import AcquisitionJob

logger = get_logger(__name__)
console = Console()

T = TypeVar("T")

STATUS_STYLES = {
    'pending': '[blue]Pending[/blue]',
    'downloading': '[yellow]Downloading[/yellow]',
    'completed': '[green]Completed[/green]',
    'failed': '[red]Failed[/red]',
    'cancelled': '[dim]Cancelled[/dim]',
}


def _run(query: Callable[[JobStore], Awaitable[T]]) -> T:
    async def runner() -> T:
        manager = DatabaseManager(settings)
        try:
            await manager.create_tables()
            return await query(JobStore(manager))
        finally:
            await manager.close()

    try:
        return asyncio.run(runner())
    except Exception as exc:
        logger.error(f"Job query failed: {exc}", exc_info=True)
        raise click.ClickException(str(exc))


def _render(jobs: List[AcquisitionJob], title: str) -> None:
    if not jobs:
        console.print("No jobs found.")
        return

    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Status")
    table.add_column("Progress", style="magenta", justify="right")
    table.add_column("Quality", style="blue")
    table.add_column("Started", style="dim")

    for job in jobs:
        name = job.title or job.source_url
        if job.is_batch:
            name = f"{name} ({job.batch_completed_count}/{job.batch_size})"
        table.add_row(
            job.id,
            name[:40] + "..." if len(name) > 40 else name,
            STATUS_STYLES.get(job.status.value, job.status.value),
            f"{job.progress:.1f}%",
            job.quality,
            job.started_at.strftime("%m/%d %H:%M") if job.started_at else "-",
        )

    console.print(table)


@click.group(name='jobs')
def jobs_group():
    """Job inspection commands."""
    pass


@jobs_group.command()
@click.option(
    '--json-output',
    is_flag=True,
    help='Output in JSON format'
)
def active(json_output: bool):
    """List pending and downloading jobs."""
    jobs = _run(lambda store: store.list_active())
    if json_output:
        click.echo(json.dumps([job.to_dict() for job in jobs], indent=2))
    else:
        _render(jobs, f"Active jobs ({len(jobs)})")


@jobs_group.command()
@click.option(
    '--limit', '-l',
    type=click.IntRange(1, settings.HISTORY_MAX_LIMIT),
    default=settings.HISTORY_DEFAULT_LIMIT,
    help='Maximum number of jobs to show'
)
@click.option(
    '--offset',
    type=click.IntRange(0),
    default=0,
    help='Number of jobs to skip'
)
@click.option(
    '--json-output',
    is_flag=True,
    help='Output in JSON format'
)
def history(limit: int, offset: int, json_output: bool):
    """List jobs in every state, most recently started first."""
    jobs, total = _run(lambda store: store.list_history(limit, offset))
    if json_output:
        click.echo(json.dumps({"jobs": [job.to_dict() for job in jobs], "total": total}, indent=2))
    else:
        _render(jobs, f"History ({offset + 1}-{offset + len(jobs)} of {total})")


@jobs_group.command()
@click.argument('job_id')
@click.option(
    '--json-output',
    is_flag=True,
    help='Output in JSON format'
)
def show(job_id: str, json_output: bool):
    """Show one job."""
    job = _run(lambda store: store.get(job_id))
    if job is None:
        raise click.ClickException(f"Job not found: {job_id}")

    data = job.to_dict()
    if json_output:
        click.echo(json.dumps(data, indent=2))
        return

    lines = [f"[bold]{key}:[/bold] {value}" for key, value in data.items() if value is not None]
    console.print(Panel("\n".join(lines), title=f"Job {job.id}"))
