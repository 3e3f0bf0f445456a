"""
SSRS Migrator CLI - Main entry point.
Built with Click for a rich command-line interface.

Connection options fall back to SSRS_SERVER_URL, SSRS_USERNAME and
SSRS_PASSWORD (environment or .env file).
"""

import functools
import os
import sys

import click
from rich.console import Console
from rich.table import Table

from ssrs_migrator.common import __version__
from ssrs_migrator.common import services
from ssrs_migrator.common.config import ConnectionContext, MigratorConfig
from ssrs_migrator.common.errors import MigratorError
from ssrs_migrator.common.export import (
    bundle_zip,
    metadata_to_csv,
    read_documents,
    timestamped_filename,
    write_files,
)
from ssrs_migrator.common.observability import configure_logging

console = Console()

EXIT_ERROR = 1
EXIT_PARTIAL_FAILURE = 2


def get_config(ctx) -> MigratorConfig:
    return ctx.obj['config']


def get_context(ctx) -> ConnectionContext:
    """Build the connection context or fail with a usage error."""
    try:
        return get_config(ctx).context()
    except ValueError as e:
        raise click.UsageError(str(e))


def operation_options(ctx) -> dict:
    config = get_config(ctx)
    return {'timeout': config.timeout, 'max_upload_items': config.max_upload_items}


def handle_errors(func):
    """
    Print migrator errors in red and exit non-zero instead of dumping a traceback.

    ValueError comes from arguments that cannot be sent (e.g. control characters
    in a catalog path) and is reported as a usage error.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except MigratorError as e:
            console.print(f"[red]{type(e).__name__}: {e}[/red]")
            sys.exit(EXIT_ERROR)
        except ValueError as e:
            raise click.UsageError(str(e))
    return wrapper


def print_items(title: str, items) -> None:
    table = Table(title=title)
    table.add_column("Name", style="cyan")
    table.add_column("Path", style="white")
    table.add_column("Type", style="magenta")
    table.add_column("Modified", style="yellow")

    for item in items:
        table.add_row(item.name, item.path, item.type_name or item.item_type.value, item.modified_at or '')

    console.print(table)
    console.print(f"\nTotal: {len(items)} items")


def print_failures(outcome) -> None:
    table = Table(title="Failed Items")
    table.add_column("Item", style="cyan")
    table.add_column("Error", style="red")

    for failure in outcome.failures:
        table.add_row(failure.item, failure.error)

    console.print(table)


@click.group()
@click.version_option(version=__version__, prog_name='ssrs-migrator')
@click.option('--server', '-s', default=None, help='Report server URL (e.g. http://host/ReportServer)')
@click.option('--username', '-u', default=None, help='Report server username')
@click.option('--password', '-p', default=None, help='Report server password')
@click.option('--timeout', '-t', type=int, default=None, help='HTTP timeout in seconds')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              default=None, help='Log level')
@click.pass_context
def cli(ctx, server, username, password, timeout, log_level):
    """SSRS Migrator - Move report definitions between disk and a report server."""
    ctx.ensure_object(dict)

    config = MigratorConfig.from_env()
    if server:
        config.server_url = server
    if username:
        config.username = username
    if password:
        config.password = password
    if timeout:
        config.timeout = timeout
    if log_level:
        config.log_level = log_level

    configure_logging(config.log_level)
    ctx.obj['config'] = config


# =============================================================================
# Catalog Commands
# =============================================================================

@cli.command()
@click.pass_context
@handle_errors
def check(ctx):
    """Check that the report server catalog root can be listed."""
    context = get_context(ctx)

    if services.check_connection(context, timeout=get_config(ctx).timeout):
        console.print(f"[green]Connection successful: {context.endpoint}[/green]")
    else:
        console.print("[red]Could not connect to SSRS (or the catalog root is empty). "
                      "Check credentials or URL.[/red]")
        sys.exit(EXIT_ERROR)


@cli.command('ls')
@click.argument('path', default='/')
@click.option('--recursive', '-r', is_flag=True, help='Include nested folders')
@click.pass_context
@handle_errors
def list_items(ctx, path, recursive):
    """List catalog items under PATH."""
    items = services.list_children(get_context(ctx), path, recursive=recursive,
                                   timeout=get_config(ctx).timeout)
    print_items(f"Catalog: {path}", items)


@cli.command()
@click.argument('path', default='/')
@click.pass_context
@handle_errors
def datasources(ctx, path):
    """List shared data sources below PATH."""
    items = services.list_data_sources(get_context(ctx), path, timeout=get_config(ctx).timeout)
    print_items(f"Shared Data Sources: {path}", items)


@cli.command()
@click.argument('folder')
@click.pass_context
@handle_errors
def reports(ctx, folder):
    """List reports directly inside FOLDER."""
    items = services.list_reports(get_context(ctx), folder, timeout=get_config(ctx).timeout)
    print_items(f"Reports: {folder}", items)


# =============================================================================
# Transfer Commands
# =============================================================================

@cli.command()
@click.argument('folder')
@click.argument('files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--data-source', '-d', default=None, help='Shared data source path to bind reports to')
@click.option('--overwrite/--no-overwrite', default=True, help='Replace existing reports')
@click.pass_context
@handle_errors
def upload(ctx, folder, files, data_source, overwrite):
    """Upload .rdl FILES into FOLDER."""
    documents = read_documents(files)

    outcome = services.upload_batch(
        get_context(ctx), folder, documents,
        data_source_path=data_source, overwrite=overwrite,
        **operation_options(ctx)
    )

    if outcome.has_failures:
        print_failures(outcome)
        console.print(f"[yellow]{outcome.summary()}[/yellow]")
        sys.exit(EXIT_PARTIAL_FAILURE)

    console.print(f"[green]{outcome.summary()}[/green]")


@cli.command()
@click.argument('folder')
@click.option('--name', '-n', 'names', multiple=True, help='Report name to download (repeatable)')
@click.option('--output', '-o', default='reports', type=click.Path(file_okay=False),
              help='Directory to write .rdl files to')
@click.option('--zip', 'zip_path', default=None, type=click.Path(dir_okay=False),
              help='Write a ZIP archive instead of loose files')
@click.pass_context
@handle_errors
def download(ctx, folder, names, output, zip_path):
    """Download report definitions from FOLDER (all reports, recursively, unless --name is given)."""
    with services.open_operations(get_context(ctx), **operation_options(ctx)) as ops:
        if names:
            files, outcome = ops.download_selected_with_outcome(folder, names)
        else:
            files, outcome = ops.download_all_with_outcome(folder)

    if outcome.has_failures:
        print_failures(outcome)

    if not files:
        console.print("[yellow]No reports found to download in the selected folder.[/yellow]")
        sys.exit(EXIT_ERROR)

    if zip_path:
        with open(zip_path, 'wb') as f:
            f.write(bundle_zip(files))
        console.print(f"[green]Wrote {len(files)} reports to {zip_path}[/green]")
    else:
        write_files(files, output)
        console.print(f"[green]Wrote {len(files)} reports to {os.path.abspath(output)}[/green]")

    if outcome.has_failures:
        console.print(f"[yellow]{outcome.summary(verb='Downloaded')}[/yellow]")
        sys.exit(EXIT_PARTIAL_FAILURE)


@cli.command()
@click.argument('folder', default='/')
@click.option('--output', '-o', default=None, type=click.Path(dir_okay=False),
              help='CSV file to write (default: SSRSReports_<timestamp>.csv)')
@click.pass_context
@handle_errors
def export(ctx, folder, output):
    """Export metadata of all reports below FOLDER as CSV."""
    items = services.get_report_metadata(get_context(ctx), folder, timeout=get_config(ctx).timeout)

    if not items:
        console.print("[yellow]No reports found to export.[/yellow]")
        sys.exit(EXIT_ERROR)

    output = output or timestamped_filename("SSRSReports", "csv")
    with open(output, 'wb') as f:
        f.write(metadata_to_csv(items))

    console.print(f"[green]Exported {len(items)} reports to {output}[/green]")


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == '__main__':
    main()
