"""Main entry point for the Suno library archiver."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
from config.settings import get_settings, Settings
from logs.logger import setup_logging, get_logger
from api.exceptions import ArchiverError, JobAlreadyRunningError, StorageError, SyncAbortedError
from api.models import AudioFormat, SyncOptions, SyncResult
from catalog.library_db import LibraryCatalog
from catalog.migration import migrate_legacy_library
from filesystem.directory_manager import DirectoryManager
from filesystem.file_manager import FileManager
from progress.job_registry import JobRegistry
from sync.sync_manager import SyncManager
from utils.constants import CATALOG_FILE_NAME
from utils.helpers import format_duration

logger = get_logger(__name__)

job_registry = JobRegistry()


def _load_settings(data_dir: Optional[Path], log_level: Optional[str]) -> Settings:
    """Load settings and apply command line overrides."""
    settings = get_settings()
    if data_dir:
        settings.data_dir = data_dir
    if log_level:
        settings.log_level = log_level.upper()
    setup_logging(settings)
    return settings


def _resolve_user(settings: Settings, username: str) -> str:
    try:
        return DirectoryManager(settings).sanitize_username(username)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='USERNAME')


@click.group()
@click.option(
    '--data-dir', '-d',
    type=click.Path(path_type=Path),
    help='Root directory of the per-user archives (overrides config)'
)
@click.option(
    '--log-level',
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
    help='Logging level (overrides config)'
)
@click.pass_context
def cli(ctx: click.Context, data_dir: Optional[Path], log_level: Optional[str]):
    """Suno library archiver.

    Downloads every track of a Suno library into a local per-user archive,
    fetching only what is missing on later runs.
    """
    ctx.obj = _load_settings(data_dir, log_level)


@cli.command()
@click.argument('username')
@click.option(
    '--token', '-t',
    envvar='SUNO_TOKEN',
    help='Bearer token for the Suno API (or SUNO_TOKEN)'
)
@click.option(
    '--limit',
    type=int,
    help='Only fetch and download up to this many new items'
)
@click.option(
    '--rate-limit-ms',
    type=int,
    help='Delay before each media download in milliseconds (overrides config)'
)
@click.option(
    '--format', 'audio_format',
    type=click.Choice([f.value for f in AudioFormat], case_sensitive=False),
    help='Audio format to download (default from config)'
)
@click.option(
    '--full-sync',
    is_flag=True,
    help='List the whole remote library instead of stopping at known items'
)
@click.option(
    '--verify-files',
    is_flag=True,
    help='Skip items whose files already exist on disk'
)
@click.option(
    '--concurrent-downloads', '-c',
    type=click.IntRange(1, 20),
    help='Number of concurrent downloads (overrides config)'
)
@click.pass_obj
def sync(
    settings: Settings,
    username: str,
    token: Optional[str],
    limit: Optional[int],
    rate_limit_ms: Optional[int],
    audio_format: Optional[str],
    full_sync: bool,
    verify_files: bool,
    concurrent_downloads: Optional[int]
):
    """Archive new tracks of USERNAME's library."""
    credential = token or settings.suno_token
    if not credential:
        raise click.UsageError("A token is required (--token, SUNO_TOKEN or suno_token in .env)")

    if concurrent_downloads:
        settings.concurrent_downloads = concurrent_downloads

    user = _resolve_user(settings, username)
    options = SyncOptions(
        limit=limit,
        rate_limit_ms=rate_limit_ms,
        format=AudioFormat(audio_format or settings.default_format),
        full_sync=full_sync,
        verify_files=verify_files
    )

    try:
        job_registry.create(user)
    except JobAlreadyRunningError as e:
        click.echo(str(e), err=True)
        sys.exit(1)

    manager = SyncManager(settings)
    try:
        result = asyncio.run(manager.run_sync(
            user, credential, options,
            progress_callback=lambda progress: job_registry.update(user, progress)
        ))
    except SyncAbortedError as e:
        stats = e.result.model_dump(mode='json') if e.result else {}
        job_registry.fail(user, str(e), stats)
        click.echo(f"❌ Archive failed: {e}", err=True)
        if e.result:
            print_summary(e.result)
        sys.exit(1)
    except ArchiverError as e:
        job_registry.fail(user, str(e))
        click.echo(f"❌ Archive failed: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.warning(f"[{user}] Sync interrupted by user")
        job_registry.fail(user, "interrupted")
        click.echo("\nInterrupted; already archived items are kept.", err=True)
        sys.exit(130)

    job_registry.complete(user, result.model_dump(mode='json'))
    print_summary(result)
    if result.failed:
        sys.exit(2)


def print_summary(result: SyncResult) -> None:
    """Print the outcome of a sync run."""
    click.echo("\n=== SYNC SUMMARY ===")
    click.echo(f"User: {result.user} ({result.mode.value} sync)")
    if result.migrated:
        click.echo(f"Migrated from library.json: {result.migrated}")
    click.echo(f"New items: {result.candidates}")
    click.echo(f"Downloaded: {result.downloaded}")
    click.echo(f"Skipped: {result.skipped}")
    click.echo(f"Failed: {result.failed}")
    click.echo(f"Library size: {result.total}")
    click.echo(f"Duration: {format_duration(result.duration_seconds)}")

    if result.warnings:
        click.echo("\nWarnings:")
        for entry in result.warnings[:10]:
            click.echo(f"  - {entry.item_id}: {entry.message}")
        if len(result.warnings) > 10:
            click.echo(f"  ... and {len(result.warnings) - 10} more")

    if result.errors:
        click.echo("\nErrors:")
        for entry in result.errors[:10]:
            click.echo(f"  - {entry.item_id}: {entry.message}")
        if len(result.errors) > 10:
            click.echo(f"  ... and {len(result.errors) - 10} more")


@cli.command()
@click.argument('username')
@click.option('--json', 'as_json', is_flag=True, help='Print raw catalog records as JSON')
@click.pass_obj
def library(settings: Settings, username: str, as_json: bool):
    """List the archived tracks of USERNAME, newest first."""
    user = _resolve_user(settings, username)
    db_path = DirectoryManager(settings).user_dir(user) / CATALOG_FILE_NAME
    if not db_path.exists():
        click.echo(f"No library found for {user}", err=True)
        sys.exit(1)

    try:
        with LibraryCatalog(db_path) as catalog:
            items = catalog.all()
    except StorageError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([item.payload for item in items], indent=2))
        return

    for item in items:
        created = item.created_at or "-"
        click.echo(f"{created}  {item.id}  {item.title}")
    click.echo(f"\n{len(items)} items")


@cli.command()
@click.argument('username')
@click.pass_obj
def migrate(settings: Settings, username: str):
    """Import a legacy library.json of USERNAME into the catalog."""
    user = _resolve_user(settings, username)
    dirs = DirectoryManager(settings).ensure_user_dirs(user)
    try:
        result = migrate_legacy_library(dirs.base_dir, user)
    except StorageError as e:
        click.echo(f"❌ Migration failed: {e}", err=True)
        sys.exit(1)

    if result.migrated_count or result.backup_path:
        click.echo(f"Migrated {result.migrated_count} items (backup at {result.backup_path})")
    else:
        click.echo("No library.json found - nothing to migrate")


@cli.command()
@click.argument('username')
@click.option(
    '--output', '-o',
    type=click.Path(path_type=Path),
    help='Zip file to write (default: <data-dir>/<user>-archive.zip)'
)
@click.pass_obj
def export(settings: Settings, username: str, output: Optional[Path]):
    """Export USERNAME's archive directory as a zip file."""
    user = _resolve_user(settings, username)
    user_dir = DirectoryManager(settings).user_dir(user)
    try:
        archive_path = FileManager(settings).export_archive(user_dir, output)
    except FileNotFoundError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    click.echo(f"Archive written to {archive_path}")


if __name__ == '__main__':
    cli()
