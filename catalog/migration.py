"""One-time migration of the legacy flat library.json into the catalog."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from api.exceptions import InvalidResponseError, StorageError
from api.models import LibraryItem
from logs.logger import get_logger, log_migration
from utils.constants import CATALOG_FILE_NAME, LEGACY_BACKUP_SUFFIX, LEGACY_LIBRARY_FILE_NAME
from .library_db import LibraryCatalog

logger = get_logger(__name__)


@dataclass
class MigrationResult:
    """Outcome of a legacy migration."""
    migrated_count: int = 0
    backup_path: Optional[Path] = None


def migrate_legacy_library(user_dir: Path, user: str) -> MigrationResult:
    """Move a pre-catalog ``library.json`` into the user's catalog.

    The legacy file is renamed to ``library.json.backup`` once its records
    are committed, so later runs find nothing to do. Running without a
    legacy file is a no-op and never touches the catalog.

    Args:
        user_dir: The user's archive directory
        user: Sanitized username, for logging

    Returns:
        Migration result with the number of records written

    Raises:
        StorageError: If the legacy file cannot be read or parsed, or the
            catalog write fails
    """
    legacy_path = Path(user_dir) / LEGACY_LIBRARY_FILE_NAME
    if not legacy_path.exists():
        logger.debug(f"[{user}] No {LEGACY_LIBRARY_FILE_NAME} found, nothing to migrate")
        return MigrationResult()

    try:
        with open(legacy_path, 'r', encoding='utf-8') as f:
            records = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise StorageError(f"Failed to read legacy library {legacy_path}: {e}", original_error=e) from e

    if not isinstance(records, list):
        raise StorageError(f"Legacy library {legacy_path} is not a JSON array")

    items = []
    for record in records:
        try:
            items.append(LibraryItem.from_record(record))
        except InvalidResponseError as e:
            logger.warning(f"[{user}] Dropping legacy record: {e}")

    logger.info(f"[{user}] Migrating {len(items)} legacy items to the catalog...")
    with LibraryCatalog(Path(user_dir) / CATALOG_FILE_NAME) as catalog:
        migrated = catalog.upsert_many(items)

    backup_path = legacy_path.with_name(legacy_path.name + LEGACY_BACKUP_SUFFIX)
    try:
        legacy_path.replace(backup_path)
    except OSError as e:
        raise StorageError(f"Failed to back up {legacy_path}: {e}", original_error=e) from e

    log_migration(user, migrated, backup_path)
    return MigrationResult(migrated_count=migrated, backup_path=backup_path)
