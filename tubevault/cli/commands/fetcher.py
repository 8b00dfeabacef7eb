"""
Fetcher CLI commands.
"""

import asyncio
import json

import click
from rich.console import Console

from ...config import settings
from ...core.fetcher import Fetcher

console = Console()


@click.group(name='fetcher')
def fetcher_group():
    """External fetcher commands."""
    pass


@fetcher_group.command()
@click.option(
    '--json-output',
    is_flag=True,
    help='Output in JSON format'
)
def check(json_output: bool):
    """Check that the fetcher binary can be invoked."""
    fetcher = Fetcher(settings)
    version = asyncio.run(fetcher.version())
    result = {
        "installed": version is not None,
        "version": version,
        "command": " ".join(fetcher.command),
        "cookies": settings.cookies_path.is_file(),
    }

    if json_output:
        click.echo(json.dumps(result, indent=2))
    elif version:
        console.print(f"[green]Fetcher available[/green]: {result['command']} {version}")
        console.print(f"Cookies file: {'present' if result['cookies'] else 'absent'}")
    else:
        console.print(f"[red]Fetcher not found[/red]: {result['command']}")

    if version is None:
        raise SystemExit(1)
