"""Registry of sync jobs, one per user, owned by the orchestration layer."""

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from api.exceptions import JobAlreadyRunningError
from logs.logger import get_logger

logger = get_logger(__name__)


class JobState(str, Enum):
    """Lifecycle of a sync job."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobRecord:
    """Status of the latest sync job of a user."""
    user: str
    state: JobState = JobState.IDLE
    progress: Dict[str, Any] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self.state == JobState.RUNNING


class JobRegistry:
    """Tracks one job per user and refuses overlapping runs.

    The registry is passed to whoever starts sync runs; the sync core never
    reads it. ``get`` returns copies.
    """

    def __init__(self):
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = threading.Lock()

    def create(self, user: str) -> JobRecord:
        """Register a new running job.

        Args:
            user: Sanitized username

        Returns:
            The new job record

        Raises:
            JobAlreadyRunningError: If the user already has a running job
        """
        with self._lock:
            existing = self._jobs.get(user)
            if existing and existing.is_running:
                raise JobAlreadyRunningError(user)

            record = JobRecord(user=user, state=JobState.RUNNING, started_at=datetime.now())
            self._jobs[user] = record
            logger.debug(f"Job created for {user}")
            return replace(record)

    def update(self, user: str, progress: Dict[str, Any]) -> None:
        """Replace the progress snapshot of a running job."""
        with self._lock:
            record = self._jobs.get(user)
            if record is None or not record.is_running:
                logger.debug(f"Ignoring progress update for {user}: no running job")
                return
            record.progress = dict(progress)

    def get(self, user: str) -> Optional[JobRecord]:
        with self._lock:
            record = self._jobs.get(user)
            return replace(record) if record else None

    def complete(self, user: str, stats: Dict[str, Any]) -> None:
        """Mark a job completed with its final statistics."""
        self._finish(user, JobState.COMPLETED, stats=stats)

    def fail(self, user: str, message: str, stats: Optional[Dict[str, Any]] = None) -> None:
        """Mark a job failed."""
        self._finish(user, JobState.FAILED, stats=stats or {}, error=message)

    def _finish(self, user: str, state: JobState, stats: Dict[str, Any], error: Optional[str] = None) -> None:
        with self._lock:
            record = self._jobs.get(user)
            if record is None:
                record = JobRecord(user=user)
                self._jobs[user] = record
            record.state = state
            record.stats = dict(stats)
            record.error = error
            record.finished_at = datetime.now()
            logger.debug(f"Job for {user} {state.value}")
