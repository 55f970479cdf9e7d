"""Per-user catalog persistence."""

from .library_db import LibraryCatalog
from .migration import MigrationResult, migrate_legacy_library

__all__ = [
    "LibraryCatalog",
    "MigrationResult",
    "migrate_legacy_library"
]
