"""
Database CLI commands.
"""

import asyncio

import click

from ...config import settings
from ...config.logging_config import get_logger
from ...core.storage import StorageLayout
from ...database.connection import DatabaseManager

logger = get_logger(__name__)


@click.group(name='db')
def db_group():
    """Database management commands."""
    pass


@db_group.command()
@click.option(
    '--drop',
    is_flag=True,
    help='Drop existing tables first'
)
def init(drop: bool):
    """Create the storage directories and database tables."""

    async def run_init():
        manager = DatabaseManager(settings)
        try:
            if drop:
                await manager.drop_tables()
            await manager.create_tables()
        finally:
            await manager.close()

    layout = StorageLayout(settings)
    layout.ensure_directories()
    for directory in layout.all_directories():
        click.echo(f"Directory ready: {directory}")

    try:
        asyncio.run(run_init())
    except Exception as exc:
        logger.error(f"Database init failed: {exc}", exc_info=True)
        raise click.ClickException(f"Database initialization failed: {exc}")

    click.echo(f"Database ready: {settings.DATABASE_URL.split('@')[-1]}")
