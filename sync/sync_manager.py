"""Sync orchestration: migrate, list, diff, download."""

from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from loguru import logger as root_logger

from api.exceptions import RemoteApiError, SyncAbortedError, TransportError
from api.models import LibraryItem, SyncMode, SyncOptions, SyncResult
from api.suno_client import SunoClient
from catalog.library_db import LibraryCatalog
from catalog.migration import migrate_legacy_library
from config.settings import Settings, get_settings
from download.concurrent_downloader import ConcurrentDownloader
from download.retry_manager import RetryingTransport
from filesystem.directory_manager import DirectoryManager
from filesystem.file_manager import FileManager
from progress.progress_tracker import ProgressTracker
from logs.logger import get_logger, log_sync_complete, log_sync_start, user_log
from utils.constants import CATALOG_FILE_NAME

logger = get_logger(__name__)


def compute_delta(remote_items: List[LibraryItem], known_ids: Set[str]) -> List[LibraryItem]:
    """Remote items whose id is not archived yet.

    Listing order is kept and repeated ids (an item that moved across a page
    boundary between requests) appear once.
    """
    seen: Set[str] = set()
    delta = []
    for item in remote_items:
        if item.id in known_ids or item.id in seen:
            continue
        seen.add(item.id)
        delta.append(item)
    return delta


class SyncManager:
    """Runs one archive sync for one user.

    The caller must not start two runs for the same user at once; the
    catalog and the downloads directory are not shared safely between runs.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[RetryingTransport] = None,
        directory_manager: Optional[DirectoryManager] = None,
        file_manager: Optional[FileManager] = None
    ):
        """Initialize sync manager.

        Args:
            settings: Application settings
            transport: Optional transport (a session is opened per run otherwise)
            directory_manager: User directory provisioning
            file_manager: Media file writer
        """
        self.settings = settings
        self.transport = transport
        self.directory_manager = directory_manager or DirectoryManager(settings)
        self.file_manager = file_manager or FileManager(settings)

    async def run_sync(
        self,
        user: str,
        credential: str,
        options: Optional[SyncOptions] = None,
        progress_callback: Optional[Callable[[Dict], None]] = None
    ) -> SyncResult:
        """Archive every remote item that is not in the user's catalog yet.

        Args:
            user: Sanitized username
            credential: Opaque bearer token
            options: Run options
            progress_callback: Called with a progress snapshot after each item

        Returns:
            Aggregate result of the run

        Raises:
            SyncAbortedError: If listing failed; ``result`` holds partial counters
            StorageError: If the catalog or legacy file cannot be opened
        """
        options = options or SyncOptions()
        dirs = self.directory_manager.ensure_user_dirs(user)

        with user_log(self.settings.data_dir, user, enabled=self.settings.user_log_enabled), \
                root_logger.contextualize(user=user):
            return await self._run(user, credential, options, dirs, progress_callback)

    async def _run(self, user, credential, options, dirs, progress_callback) -> SyncResult:
        result = SyncResult(user=user, started_at=datetime.now())
        tracker = ProgressTracker()

        migration = migrate_legacy_library(dirs.base_dir, user)
        result.migrated = migration.migrated_count

        with LibraryCatalog(dirs.base_dir / CATALOG_FILE_NAME) as catalog:
            known_ids = catalog.all_ids()
            full_sync = options.full_sync or not known_ids
            result.mode = SyncMode.FULL if full_sync else SyncMode.INCREMENTAL
            log_sync_start(user, result.mode.value, len(known_ids))

            async with SunoClient(self.settings, credential, user, transport=self.transport) as client:
                try:
                    remote_items = await client.fetch_library(
                        known_ids, limit=options.limit, full_sync=full_sync
                    )
                except (RemoteApiError, TransportError) as e:
                    logger.error(f"[{user}] Archive failed while listing: {e}")
                    self._fill_result(result, tracker, catalog)
                    raise SyncAbortedError(f"Listing failed: {e}", result=result) from e

                delta = compute_delta(remote_items, known_ids)
                if options.limit:
                    if len(delta) > options.limit:
                        logger.info(f"[{user}] Limiting download to {options.limit} items")
                    delta = delta[:options.limit]

                result.candidates = len(delta)
                tracker.start_session(total=len(delta))
                logger.info(f"[{user}] Found {len(delta)} new items to download")

                if delta:
                    downloader = ConcurrentDownloader(
                        self.settings,
                        client.transport,
                        credential,
                        user,
                        catalog=catalog,
                        known_ids=known_ids,
                        tracker=tracker,
                        file_manager=self.file_manager,
                        audio_format=options.format,
                        rate_limit_ms=options.rate_limit_ms,
                        verify_files=options.verify_files,
                        progress_callback=progress_callback
                    )
                    await downloader.run(delta, dirs.downloads_dir)
                else:
                    tracker.end_session()

            self._fill_result(result, tracker, catalog)

        log_sync_complete(user, result.model_dump())
        return result

    @staticmethod
    def _fill_result(result: SyncResult, tracker: ProgressTracker, catalog: LibraryCatalog) -> None:
        progress = tracker.progress
        result.downloaded = progress.downloaded
        result.failed = progress.failed
        result.skipped = progress.skipped
        result.errors = tracker.get_errors()
        result.warnings = tracker.get_warnings()
        result.total = catalog.count()
        result.finished_at = datetime.now()


async def run_sync(
    user: str,
    credential: str,
    options: Optional[SyncOptions] = None,
    settings: Optional[Settings] = None,
    progress_callback: Optional[Callable[[Dict], None]] = None
) -> SyncResult:
    """Sync one user's library with default collaborators.

    ``user`` is sanitized before use.
    """
    settings = settings or get_settings()
    manager = SyncManager(settings)
    safe_user = manager.directory_manager.sanitize_username(user)
    return await manager.run_sync(safe_user, credential, options, progress_callback=progress_callback)
