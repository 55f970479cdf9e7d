"""Sync orchestration package."""

from .sync_manager import SyncManager, compute_delta, run_sync

__all__ = [
    "SyncManager",
    "compute_delta",
    "run_sync"
]
