"""Retry management with exponential backoff and the retrying HTTP transport."""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

import aiohttp

from api.exceptions import TransportError
from config.settings import Settings
from logs.logger import get_logger

logger = get_logger(__name__)


# Failures of the connection itself; local disk errors are not among them
TRANSPORT_EXCEPTIONS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
)

# Receives the body chunks of a 2xx response and returns the bytes written
BodyWriter = Callable[[AsyncIterator[bytes]], Awaitable[int]]


def _format_error_message(exception: Exception) -> str:
    """Format exception message for logging, handling empty messages."""
    error_msg = str(exception)
    if not error_msg or error_msg.strip() == "":
        return f"{type(exception).__name__}: {repr(exception)}"
    return error_msg


class RetryManager:
    """Manages retry logic with capped exponential backoff.

    Holds no per-call state, so one manager can serve concurrent callers.
    """

    def __init__(self, settings: Settings):
        """Initialize retry manager.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self.max_retries = settings.max_retries
        self.initial_backoff = settings.initial_backoff_seconds
        self.max_backoff = settings.max_backoff_seconds

    def calculate_backoff(self, attempt: int) -> float:
        """Backoff to wait after failed attempt ``attempt`` (1-based).

        Args:
            attempt: Number of the attempt that just failed

        Returns:
            Backoff time in seconds
        """
        return min(self.initial_backoff * (2 ** attempt), self.max_backoff)

    async def retry_with_backoff(
        self,
        func: Callable,
        *args,
        retryable_exceptions: tuple = TRANSPORT_EXCEPTIONS,
        max_retries: Optional[int] = None,
        **kwargs
    ) -> Any:
        """Execute a coroutine function, retrying on the given exceptions.

        ``max_retries`` is the total number of attempts.

        Args:
            func: Coroutine function to execute
            *args: Function arguments
            retryable_exceptions: Exceptions that should trigger retry
            max_retries: Override default attempt budget
            **kwargs: Function keyword arguments

        Returns:
            Function result

        Raises:
            Exception: Last exception if all retries exhausted
        """
        max_attempts = max_retries or self.max_retries
        last_exception: Optional[BaseException] = None

        for attempt in range(1, max_attempts + 1):
            try:
                return await func(*args, **kwargs)
            except retryable_exceptions as e:
                last_exception = e

                if attempt >= max_attempts:
                    logger.debug(f"All {max_attempts} attempts exhausted for {func.__name__}: {_format_error_message(e)}")
                    break

                backoff_time = self.calculate_backoff(attempt)
                logger.warning(
                    f"Retry {attempt}/{max_attempts} after {backoff_time:.2f}s: "
                    f"{type(e).__name__}: {_format_error_message(e)}"
                )
                await asyncio.sleep(backoff_time)

        raise last_exception


@dataclass
class TransportResponse:
    """A received HTTP response.

    ``body`` holds the whole body unless it was streamed to a writer, in
    which case ``bytes_written`` counts what the writer stored.
    """
    status: int
    reason: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    bytes_written: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status < 500

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)


class RetryingTransport:
    """HTTP transport shared by the lister and the downloader.

    Transport-level failures are retried with backoff. A response that was
    received is returned as-is whatever its status; interpreting the status
    is the caller's job.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        retry_manager: RetryManager,
        chunk_size: Optional[int] = None
    ):
        """Initialize the transport.

        Args:
            session: Open aiohttp session
            retry_manager: Retry policy
            chunk_size: Streaming chunk size (defaults to settings)
        """
        self.session = session
        self.retry_manager = retry_manager
        self.chunk_size = chunk_size or retry_manager.settings.chunk_size

    async def request(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        method: str = "GET",
        timeout: Optional[float] = None
    ) -> TransportResponse:
        """Issue one request with retry on transport failures.

        The whole body is read into memory; use :meth:`download` for media.

        Args:
            url: Target URL
            headers: Request headers
            method: HTTP method
            timeout: Total timeout override in seconds

        Returns:
            The received response

        Raises:
            TransportError: If every attempt failed before a response arrived
        """
        return await self._with_retry(self._perform_request, method, url, headers, timeout)

    async def download(
        self,
        url: str,
        write_body: BodyWriter,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> TransportResponse:
        """GET a media file and stream a 2xx body into ``write_body``.

        A connection lost mid-body counts as a transport failure and the
        whole file is requested again. Error responses are not streamed;
        their (small) body is returned in ``body``.

        Args:
            url: Media URL
            write_body: Coroutine consuming the body chunks
            headers: Request headers
            timeout: Total timeout override in seconds

        Returns:
            The received response with ``bytes_written`` set on success

        Raises:
            TransportError: If every attempt failed
            OSError: If ``write_body`` cannot store the file
        """
        return await self._with_retry(self._perform_download, url, write_body, headers, timeout)

    async def _with_retry(self, func: Callable, *args) -> TransportResponse:
        attempts = 0

        async def attempt() -> TransportResponse:
            nonlocal attempts
            attempts += 1
            return await func(*args)

        try:
            return await self.retry_manager.retry_with_backoff(attempt)
        except TRANSPORT_EXCEPTIONS as e:
            raise TransportError(
                f"Network error after {attempts} attempts: {_format_error_message(e)}",
                original_error=e,
                attempts=attempts
            ) from e

    @staticmethod
    def _request_kwargs(headers: Optional[Dict[str, str]], timeout: Optional[float]) -> Dict[str, Any]:
        request_kwargs: Dict[str, Any] = {'headers': headers}
        if timeout:
            request_kwargs['timeout'] = aiohttp.ClientTimeout(total=timeout)
        return request_kwargs

    async def _perform_request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]],
        timeout: Optional[float]
    ) -> TransportResponse:
        logger.debug(f"{method} {url}")

        async with self.session.request(method, url, **self._request_kwargs(headers, timeout)) as response:
            body = await response.read()
            logger.debug(f"Response status: {response.status} ({len(body)} bytes)")
            return TransportResponse(
                status=response.status,
                reason=response.reason or "",
                headers=dict(response.headers),
                body=body
            )

    async def _perform_download(
        self,
        url: str,
        write_body: BodyWriter,
        headers: Optional[Dict[str, str]],
        timeout: Optional[float]
    ) -> TransportResponse:
        logger.debug(f"GET {url} (streaming)")

        async with self.session.request("GET", url, **self._request_kwargs(headers, timeout)) as response:
            result = TransportResponse(
                status=response.status,
                reason=response.reason or "",
                headers=dict(response.headers)
            )
            if not result.ok:
                result.body = await response.read()
                logger.debug(f"Download HTTP error {response.status} for {url}: {result.text()[:500]}")
                return result

            result.bytes_written = await write_body(response.content.iter_chunked(self.chunk_size))
            logger.debug(f"Streamed {result.bytes_written} bytes from {url}")
            return result
