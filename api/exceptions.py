"""Exceptions for the Suno archiver."""

from typing import Any, List, Optional


class ArchiverError(Exception):
    """Base exception for archiver errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, response_data: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class TransportError(ArchiverError):
    """Network-level failure that survived every retry attempt."""

    def __init__(self, message: str, original_error: Optional[Exception] = None, attempts: int = 0):
        super().__init__(message)
        self.original_error = original_error
        self.attempts = attempts


class RemoteApiError(ArchiverError):
    """Exception raised when the listing endpoint answers with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None, response_data: Optional[Any] = None):
        super().__init__(message, status_code=status_code, response_data=response_data)


class UnrecognizedResponseError(RemoteApiError):
    """Exception raised when a listing page matches none of the accepted shapes."""

    def __init__(self, message: str, response_data: Optional[Any] = None):
        super().__init__(message, response_data=response_data)


class InvalidResponseError(RemoteApiError):
    """Exception raised when a listed record is unusable (e.g. has no id)."""

    def __init__(self, message: str, response_data: Optional[Any] = None):
        super().__init__(message, response_data=response_data)


class FormatUnavailableError(ArchiverError):
    """A single audio format was refused by the media endpoint (4xx)."""

    def __init__(self, audio_format: str, status_code: int):
        super().__init__(
            f"{audio_format.upper()} not available (HTTP {status_code})",
            status_code=status_code
        )
        self.audio_format = audio_format


class DownloadError(ArchiverError):
    """Every requested format of an item failed."""

    def __init__(self, item_id: str, format_errors: List[str]):
        super().__init__("; ".join(format_errors) or "download failed")
        self.item_id = item_id
        self.format_errors = list(format_errors)


class StorageError(ArchiverError):
    """Catalog I/O failure."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class SyncAbortedError(ArchiverError):
    """A sync run stopped before its delta could be computed or processed.

    ``result`` holds whatever progress was reached before the abort.
    """

    def __init__(self, message: str, result: Optional[Any] = None):
        super().__init__(message)
        self.result = result


class JobAlreadyRunningError(ArchiverError):
    """Exception raised when a second sync job is started for the same user."""

    def __init__(self, user: str):
        super().__init__(f"A sync job is already running for '{user}'")
        self.user = user
