"""Download package: retrying transport and concurrent downloader."""

from .retry_manager import RetryManager, RetryingTransport, TransportResponse
from .concurrent_downloader import ConcurrentDownloader

__all__ = [
    "RetryManager",
    "RetryingTransport",
    "TransportResponse",
    "ConcurrentDownloader"
]
