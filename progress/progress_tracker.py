"""Progress and error accounting for one sync run."""

from datetime import datetime
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, asdict
from api.models import SyncErrorEntry
from logs.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ProgressInfo:
    """Item counters of a sync run."""
    total: int = 0
    downloaded: int = 0
    failed: int = 0
    skipped: int = 0
    bytes_downloaded: int = 0
    current_item: Optional[str] = None
    start_time: Optional[datetime] = None

    @property
    def processed(self) -> int:
        """Items that reached a final state."""
        return self.downloaded + self.failed + self.skipped

    @property
    def completion_percentage(self) -> float:
        """Calculate completion percentage."""
        if self.total == 0:
            return 0.0
        return min(100.0, (self.processed / self.total) * 100)

    @property
    def elapsed_time(self) -> float:
        """Get elapsed time in seconds."""
        if not self.start_time:
            return 0.0
        duration = (datetime.now() - self.start_time).total_seconds()
        # Ensure duration is never negative
        return max(0.0, duration)


class ProgressTracker:
    """Mutable progress, error and warning state of one sync run.

    Workers share a tracker within a single event loop; snapshot accessors
    return copies so callers never see later mutations.
    """

    def __init__(self):
        """Initialize progress tracker."""
        self.progress = ProgressInfo()
        self.errors: List[SyncErrorEntry] = []
        self.warnings: List[SyncErrorEntry] = []
        self.is_active = False

    def start_session(self, total: int = 0) -> None:
        """Start counting a batch of ``total`` candidate items."""
        self.progress.total = total
        self.progress.start_time = datetime.now()
        self.is_active = True

        logger.debug(f"Progress tracking started: {total} items")

    def end_session(self) -> None:
        """End the current progress tracking session."""
        self.is_active = False
        self.progress.current_item = None

        logger.debug(
            f"Progress tracking ended: {self.progress.processed}/{self.progress.total} items "
            f"processed in {self.progress.elapsed_time:.2f}s"
        )

    def set_current_item(self, item_id: Optional[str]) -> None:
        self.progress.current_item = item_id

    def mark_downloaded(self, bytes_downloaded: int = 0) -> None:
        self.progress.downloaded += 1
        self.progress.bytes_downloaded += bytes_downloaded

    def mark_skipped(self) -> None:
        self.progress.skipped += 1

    def mark_failed(self, item_id: str, message: str) -> None:
        """Count an item as failed and record its error.

        Args:
            item_id: Failed item
            message: Combined per-format error messages
        """
        self.progress.failed += 1
        self.errors.append(SyncErrorEntry(item_id=item_id, message=message))

    def add_warning(self, item_id: str, message: str) -> None:
        """Record a soft per-format error that did not fail its item."""
        self.warnings.append(SyncErrorEntry(item_id=item_id, message=message))

    def get_progress(self) -> Dict[str, Any]:
        """Snapshot of the counters."""
        snapshot = asdict(self.progress)
        snapshot['completion_percentage'] = round(self.progress.completion_percentage, 1)
        snapshot['status'] = 'running' if self.is_active else 'idle'
        return snapshot

    def get_errors(self) -> List[SyncErrorEntry]:
        return [entry.model_copy() for entry in self.errors]

    def get_warnings(self) -> List[SyncErrorEntry]:
        return [entry.model_copy() for entry in self.warnings]
