"""Logging setup and structured log helpers built on loguru."""

import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from loguru import logger

from config.settings import Settings
from utils.constants import (
    LOG_FORMAT_CONSOLE, LOG_FORMAT_FILE, LOGS_DIR_NAME, USER_LOG_FILE_NAME
)


def setup_logging(settings: Settings) -> None:
    """Configure console and optional file logging.

    Args:
        settings: Application settings
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format=LOG_FORMAT_CONSOLE,
        colorize=True
    )

    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            format=LOG_FORMAT_FILE,
            rotation="10 MB",
            retention=5,
            encoding="utf-8"
        )


def get_logger(name: str):
    """Get a logger bound to a component name."""
    return logger.bind(component=name)


@contextmanager
def user_log(data_dir: Path, user: str, enabled: bool = True) -> Iterator[Optional[Path]]:
    """Route every record tagged with ``user`` into that user's archive log.

    Records are written as JSON lines. Tagging happens with
    ``logger.contextualize(user=...)`` in the caller.

    Args:
        data_dir: Root data directory
        user: Sanitized username
        enabled: When False nothing is installed

    Yields:
        Path of the log file, or None when disabled
    """
    if not enabled:
        yield None
        return

    log_path = Path(data_dir) / user / LOGS_DIR_NAME / USER_LOG_FILE_NAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    sink_id = logger.add(
        str(log_path),
        level="INFO",
        serialize=True,
        encoding="utf-8",
        filter=lambda record: record["extra"].get("user") == user
    )
    try:
        yield log_path
    finally:
        logger.remove(sink_id)


def log_sync_start(user: str, mode: str, known_count: int) -> None:
    logger.info(f"[{user}] Starting {mode} sync ({known_count} items already archived)")


def log_sync_complete(user: str, stats: dict) -> None:
    logger.info(
        f"[{user}] Sync complete: {stats.get('downloaded', 0)} downloaded, "
        f"{stats.get('failed', 0)} failed, {stats.get('skipped', 0)} skipped, "
        f"{stats.get('total', 0)} in library"
    )


def log_page_fetched(user: str, page: int, count: int, total: int) -> None:
    logger.info(f"[{user}] Fetched page {page}: {count} items (total: {total})")


def log_early_stop(user: str, page: int, threshold: int) -> None:
    logger.info(
        f"[{user}] Early stop at page {page}: "
        f"{threshold} consecutive pages of existing content"
    )


def log_download_complete(user: str, file_name: str, done: int, total: int) -> None:
    logger.info(f"[{user}] Downloaded {file_name} ({done}/{total})")


def log_download_skip(user: str, item_id: str, reason: str) -> None:
    logger.info(f"[{user}] Skipping {item_id}: {reason}")


def log_download_error(user: str, item_id: str, error: str) -> None:
    logger.error(f"[{user}] Failed to download {item_id}: {error}")


def log_migration(user: str, count: int, backup_path: Path) -> None:
    logger.info(f"[{user}] Migrated {count} legacy items, original kept at {backup_path}")
