"""
Server CLI commands: run the API and show its effective configuration.
"""

import json
import sys

import click
import uvicorn
from rich.console import Console
from rich.table import Table

from ...config import settings
from ...config.logging_config import get_logger

logger = get_logger(__name__)
console = Console()


@click.group(name='server')
def server_group():
    """API server commands."""


@server_group.command()
@click.option('--host', default=settings.API_HOST, show_default=True, help='Bind address')
@click.option('--port', type=int, default=settings.API_PORT, show_default=True, help='Bind port')
@click.option('--reload', is_flag=True, help='Restart on code changes (development only)')
@click.option(
    '--log-level',
    type=click.Choice(['debug', 'info', 'warning', 'error']),
    default='info',
    show_default=True,
)
def start(host: str, port: int, reload: bool, log_level: str):
    """Run the API server.

    Always a single process: the concurrency limit, the running fetcher
    processes and the WebSocket observers all live in it.
    """
    console.print(
        f"[bold]{settings.APP_NAME}[/bold] on http://{host}:{port} "
        f"(max {settings.MAX_CONCURRENT_ACQUISITIONS} concurrent acquisitions)"
    )
    server = uvicorn.Server(uvicorn.Config(
        app="tubevault.api.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
        access_log=False,
        server_header=False,
    ))
    try:
        server.run()
    except Exception as exc:
        logger.error(f"Server start failed: {exc}", exc_info=True)
        console.print(f"[red]Failed to start server:[/red] {exc}")
        sys.exit(1)


def _effective_config(include_secrets: bool) -> dict:
    return {
        'environment': settings.ENVIRONMENT.value,
        'api': f"{settings.API_HOST}:{settings.API_PORT}{settings.API_PREFIX}",
        'database': settings.DATABASE_URL if include_secrets else settings.DATABASE_URL.split('@')[-1],
        'storage_root': str(settings.STORAGE_ROOT),
        'media_dir': str(settings.media_dir),
        'working_dir': str(settings.working_dir),
        'fetcher': settings.FETCHER_BINARY,
        'cookies_file': str(settings.cookies_path),
        'default_quality': settings.DEFAULT_QUALITY,
        'max_concurrent_acquisitions': settings.MAX_CONCURRENT_ACQUISITIONS,
        'batch_member_concurrency': settings.BATCH_MEMBER_CONCURRENCY,
        'log_level': settings.LOG_LEVEL.value,
    }


@server_group.command(name='config')
@click.option('--json-output', is_flag=True, help='Print JSON instead of a table')
@click.option('--include-secrets', is_flag=True, help='Show the full database URL')
def show_config(json_output: bool, include_secrets: bool):
    """Show the configuration the server would start with."""
    values = _effective_config(include_secrets)
    if json_output:
        click.echo(json.dumps(values, indent=2))
        return

    table = Table(title="Effective configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in values.items():
        table.add_row(key, str(value))
    console.print(table)
