"""API package for the Suno library: models, errors and the listing client."""

from .models import AudioFormat, LibraryItem, SyncMode, SyncOptions, SyncResult, SyncErrorEntry
from .exceptions import (
    ArchiverError, TransportError, RemoteApiError, UnrecognizedResponseError,
    FormatUnavailableError, DownloadError, StorageError, SyncAbortedError
)

__all__ = [
    "AudioFormat",
    "LibraryItem",
    "SyncMode",
    "SyncOptions",
    "SyncResult",
    "SyncErrorEntry",
    "ArchiverError",
    "TransportError",
    "RemoteApiError",
    "UnrecognizedResponseError",
    "FormatUnavailableError",
    "DownloadError",
    "StorageError",
    "SyncAbortedError"
]
