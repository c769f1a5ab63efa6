"""
RichStore CLI Tool

This module provides a command-line interface for one-time migrations into a
relational rich store. It exports a file-backed primary store to flat files,
validates such files and bulk loads them into a database.
"""

import logging

import click

from richstore.config import settings
from richstore.core.exceptions import MalformedStagingFileError
from richstore.migration import export_path, export_store, import_into_database
from richstore.storage.bulk_format import LOAD_ORDER, validate_file
from richstore.storage.file_storage import FileStore


def configure_logging(level: str):
    logging_config = settings.get_logging_config()
    logging.basicConfig(level=level.upper(), format=logging_config["format"])


@click.group()
@click.option('--log-level', default=settings.LOG_LEVEL, help='Logging level')
@click.pass_context
def richstore(ctx, log_level):
    """RichStore CLI - export and bulk load rich store tables"""
    ctx.ensure_object(dict)
    configure_logging(log_level)


@richstore.command()
@click.argument('store_path', type=click.Path(exists=True, file_okay=False))
@click.argument('output_dir', type=click.Path(file_okay=False))
@click.option('--header/--no-header', default=False, help='Write column names as the first line')
@click.pass_context
def export(ctx, store_path, output_dir, header):
    """Export a file store to <table>.csv flat files"""
    try:
        with FileStore(store_path) as store:
            counts = export_store(store, output_dir, header=header)
    except Exception as e:
        click.echo(f"Error exporting store: {e}", err=True)
        ctx.exit(1)

    click.echo(f"Exported {store_path} to {output_dir}:")
    for table, count in counts.items():
        click.echo(f"  - {table}: {count} rows")


@richstore.command()
@click.argument('input_dir', type=click.Path(exists=True, file_okay=False))
@click.option('--header/--no-header', default=False, help='Files start with a header line')
@click.pass_context
def validate(ctx, input_dir, header):
    """Check that the flat files of an export directory parse"""
    failed = False
    for table in LOAD_ORDER:
        path = export_path(input_dir, table)
        if not path.exists():
            click.echo(f"  - {table}: missing")
            continue
        try:
            count = validate_file(table, str(path), has_header=header)
            click.echo(f"  - {table}: {count} rows")
        except MalformedStagingFileError as e:
            click.echo(f"  - {table}: malformed ({e})", err=True)
            failed = True

    if failed:
        ctx.exit(1)


@richstore.command()
@click.argument('input_dir', type=click.Path(exists=True, file_okay=False))
@click.option('--database-url', default=settings.DATABASE_URL, help='SQLAlchemy database URL')
@click.option('--header/--no-header', default=False, help='Files start with a header line')
@click.pass_context
def load(ctx, input_dir, database_url, header):
    """Bulk load an export directory into a relational database"""
    try:
        loaded = import_into_database(input_dir, database_url=database_url, has_header=header)
    except Exception as e:
        click.echo(f"Error loading {input_dir}: {e}", err=True)
        ctx.exit(1)

    click.echo(f"Loaded {input_dir}:")
    for table, count in loaded.items():
        click.echo(f"  - {table}: {count} rows")


@richstore.command(name='check-config')
@click.pass_context
def check_config(ctx):
    """Show the index configuration and report problems"""
    config = settings.get_index_config()
    for key, value in config.items():
        click.echo(f"{key}: {value}")

    errors = settings.validate_config()
    if errors:
        click.echo("Configuration errors:", err=True)
        for error in errors:
            click.echo(f"  - {error}", err=True)
        ctx.exit(1)
    click.echo("Configuration OK")


if __name__ == '__main__':
    richstore()
