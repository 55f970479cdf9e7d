"""Progress tracking package for sync runs."""

from .progress_tracker import ProgressTracker, ProgressInfo
from .job_registry import JobRegistry, JobRecord, JobState

__all__ = [
    "ProgressTracker",
    "ProgressInfo",
    "JobRegistry",
    "JobRecord",
    "JobState"
]
