"""Concurrent media downloader with per-format error accounting."""

import asyncio
import functools
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from api.exceptions import (
    ArchiverError, DownloadError, FormatUnavailableError, StorageError, TransportError
)
from api.models import AudioFormat, LibraryItem
from catalog.library_db import LibraryCatalog
from config.settings import Settings
from filesystem.file_manager import FileManager
from progress.progress_tracker import ProgressTracker
from utils.helpers import replace_url_extension
from .retry_manager import RetryingTransport
from logs.logger import (
    get_logger, log_download_complete, log_download_error, log_download_skip
)

logger = get_logger(__name__)


class ConcurrentDownloader:
    """Downloads library items with a fixed pool of worker coroutines.

    Workers drain a shared FIFO queue, so every item is claimed exactly once.
    Formats of one item are fetched one after another. Every item that ends
    with at least one format on disk is written to the catalog right away,
    which lets an interrupted run resume from the catalog alone.
    """

    def __init__(
        self,
        settings: Settings,
        transport: RetryingTransport,
        credential: str,
        user: str,
        catalog: Optional[LibraryCatalog] = None,
        known_ids: Optional[Set[str]] = None,
        tracker: Optional[ProgressTracker] = None,
        file_manager: Optional[FileManager] = None,
        audio_format: AudioFormat = AudioFormat.MP3,
        rate_limit_ms: Optional[int] = None,
        verify_files: bool = False,
        progress_callback: Optional[Callable[[Dict], None]] = None
    ):
        """Initialize concurrent downloader.

        Args:
            settings: Application settings
            transport: Retrying transport shared with the lister
            credential: Opaque bearer token
            user: Sanitized username, for logging
            catalog: Catalog receiving each successfully archived item
            known_ids: In-memory id set, extended on every success
            tracker: Progress tracker (a fresh one is created otherwise)
            file_manager: Media file writer
            audio_format: Requested format(s)
            rate_limit_ms: Pause before every media request (defaults to settings)
            verify_files: Skip items whose files are already on disk
            progress_callback: Called with a progress snapshot after each item
        """
        self.settings = settings
        self.transport = transport
        self.credential = credential
        self.user = user
        self.catalog = catalog
        self.known_ids = known_ids if known_ids is not None else set()
        self.tracker = tracker or ProgressTracker()
        self.file_manager = file_manager or FileManager(settings)
        self.audio_format = audio_format
        self.rate_limit_ms = settings.rate_limit_ms if rate_limit_ms is None else rate_limit_ms
        self.verify_files = verify_files
        self.progress_callback = progress_callback
        self.concurrency = settings.concurrent_downloads

    def get_auth_headers(self) -> Dict[str, str]:
        return {'Authorization': f'Bearer {self.credential}'}

    async def run(self, items: List[LibraryItem], destination_dir: Path) -> None:
        """Download every item, ``concurrency`` at a time.

        Args:
            items: Candidate items, in the order they should be claimed
            destination_dir: Directory receiving the media files
        """
        if not items:
            return

        destination_dir = Path(destination_dir)
        destination_dir.mkdir(parents=True, exist_ok=True)
        self.file_manager.cleanup_temp_files(destination_dir)

        if not self.tracker.is_active:
            self.tracker.start_session(total=len(items))

        queue: asyncio.Queue = asyncio.Queue()
        for item in items:
            queue.put_nowait(item)

        worker_count = min(self.concurrency, len(items))
        logger.debug(f"[{self.user}] Starting {worker_count} workers for {len(items)} items")

        try:
            await asyncio.gather(*(
                self._worker(queue, destination_dir, worker_id)
                for worker_id in range(worker_count)
            ))
        finally:
            self.tracker.end_session()

    async def _worker(self, queue: asyncio.Queue, destination_dir: Path, worker_id: int) -> None:
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            try:
                await self.download_item(item, destination_dir)
            except Exception as e:
                logger.exception(f"[{self.user}] Worker {worker_id} crashed on {item.id}")
                self.tracker.mark_failed(item.id, f"unexpected error: {e}")
            finally:
                queue.task_done()
                self._notify_progress()

    async def download_item(self, item: LibraryItem, destination_dir: Path) -> bool:
        """Download every requested format of one item.

        Args:
            item: Item to download
            destination_dir: Directory receiving the media files

        Returns:
            True if the item is archived (downloaded, or verified on disk)
        """
        self.tracker.set_current_item(item.id)

        if not item.audio_url:
            log_download_skip(self.user, item.id, "no audio URL")
            self.tracker.mark_skipped()
            return False

        file_base = self.file_manager.build_file_base(item)
        extensions = self.audio_format.extensions
        targets = self.file_manager.target_paths(destination_dir, file_base, extensions)

        if self.verify_files and self.file_manager.all_exist(targets):
            log_download_skip(self.user, item.id, f"{file_base} already on disk")
            self.tracker.mark_skipped()
            self._record_archived(item)
            return True

        success_count = 0
        bytes_written = 0
        format_errors: List[str] = []

        for extension, out_path in zip(extensions, targets):
            try:
                if self.rate_limit_ms > 0:
                    await asyncio.sleep(self.rate_limit_ms / 1000)

                bytes_written += await self._download_format(item, extension, out_path)
                success_count += 1
                log_download_complete(
                    self.user, out_path.name,
                    self.tracker.progress.downloaded + 1, self.tracker.progress.total
                )
            except FormatUnavailableError as e:
                format_errors.append(str(e))
                logger.warning(f"[{self.user}] {extension.upper()} format not available for {item.id} (plan restriction?)")
            except (TransportError, ArchiverError, OSError) as e:
                format_errors.append(f"{extension}: {e}")
                logger.error(f"[{self.user}] Failed to download {extension} for {file_base}: {e}")

        if success_count > 0:
            self.tracker.mark_downloaded(bytes_written)
            for message in format_errors:
                self.tracker.add_warning(item.id, message)
            if format_errors:
                logger.warning(f"[{self.user}] Partial success for {item.id}: {', '.join(format_errors)}")
            self._record_archived(item)
            return True

        error = DownloadError(item.id, format_errors)
        self.tracker.mark_failed(item.id, str(error))
        log_download_error(self.user, item.id, f"all formats failed - {error}")
        return False

    async def _download_format(self, item: LibraryItem, extension: str, out_path: Path) -> int:
        """Stream one format of an item to disk.

        Returns:
            Number of bytes written

        Raises:
            FormatUnavailableError: On a 4xx response
            ArchiverError: On any other non-2xx response
            TransportError: If the request never got a response
            OSError: If the file cannot be written
        """
        url = replace_url_extension(item.audio_url, extension)
        response = await self.transport.download(
            url,
            functools.partial(self.file_manager.write_stream, out_path),
            headers=self.get_auth_headers(),
            timeout=self.settings.download_timeout
        )

        if response.is_client_error:
            raise FormatUnavailableError(extension, response.status)
        if not response.ok:
            raise ArchiverError(f"HTTP {response.status} for {extension}", status_code=response.status)

        return response.bytes_written

    def _record_archived(self, item: LibraryItem) -> None:
        """Persist an archived item and remember its id."""
        if self.catalog is not None:
            try:
                self.catalog.upsert(item.stamped())
            except StorageError as e:
                # The file stays on disk; the next run re-upserts the item
                logger.error(f"[{self.user}] Failed to write {item.id} to catalog: {e}")
                return
        self.known_ids.add(item.id)

    def _notify_progress(self) -> None:
        if self.progress_callback is None:
            return
        try:
            self.progress_callback(self.tracker.get_progress())
        except Exception as e:
            logger.warning(f"[{self.user}] Progress callback failed: {e}")
