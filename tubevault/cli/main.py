"""
``tubevault`` command line entry point.
"""

import sys

import click

from ..config import settings
from ..config.logging_config import get_logger, setup_logging
from .commands.db import db_group
from .commands.fetcher import fetcher_group
from .commands.jobs import jobs_group
from .commands.server import server_group

logger = get_logger(__name__)

_VERBOSITY = {0: 'WARNING', 1: 'INFO'}


@click.group()
@click.version_option(version=settings.APP_VERSION, prog_name=settings.APP_NAME)
@click.option('--verbose', '-v', count=True, help='More log output (-v info, -vv debug)')
@click.option('--quiet', '-q', is_flag=True, help='Only log errors')
@click.pass_context
def cli(ctx, verbose: int, quiet: bool):
    """
    TubeVault acquisition service.

    Run the API server, inspect the job store and check the fetcher.
    """
    ctx.ensure_object(dict)
    ctx.obj.update(verbose=verbose, quiet=quiet)

    level = 'ERROR' if quiet else _VERBOSITY.get(verbose, 'DEBUG')
    setup_logging(log_level=level, json_format=False)
    logger.debug("CLI logging configured", extra={"level": level})


for group in (server_group, db_group, jobs_group, fetcher_group):
    cli.add_command(group)


@cli.command()
def version():
    """Print version and runtime details."""
    click.echo(f"{settings.APP_NAME} {settings.APP_VERSION}")
    click.echo(f"environment: {settings.ENVIRONMENT.value}")
    click.echo(f"fetcher:     {settings.FETCHER_BINARY}")
    click.echo(f"storage:     {settings.STORAGE_ROOT}")
    click.echo(f"python:      {sys.version.split()[0]} ({sys.platform})")


def main():
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nInterrupted", err=True)
        sys.exit(130)


if __name__ == '__main__':
    main()
