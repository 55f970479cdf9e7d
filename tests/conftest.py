"""Test configuration and fixtures"""

import asyncio
import json
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union
from urllib.parse import parse_qs, urlsplit

import pytest

from api.exceptions import TransportError
from api.models import LibraryItem
from config.settings import Settings
from download.retry_manager import TransportResponse

FEED_HOST = "studio-api.test"
MEDIA_HOST = "cdn.test"


def make_record(
    item_id: str,
    title: str = "Song",
    created_at: Optional[str] = "2024-01-01T00:00:00Z",
    audio: bool = True
) -> dict:
    """A raw listing record as the API returns it."""
    record = {
        "id": item_id,
        "title": title,
        "created_at": created_at,
        "model_name": "chirp-v3",
    }
    if audio:
        record["audio_url"] = f"https://{MEDIA_HOST}/{item_id}.mp3"
    return record


def make_item(item_id: str, **kwargs) -> LibraryItem:
    return LibraryItem.from_record(make_record(item_id, **kwargs))


def json_response(data, status: int = 200) -> TransportResponse:
    return TransportResponse(status=status, reason="OK" if status < 400 else "Error", body=json.dumps(data).encode())


Outcome = Union[int, Exception, TransportResponse]


class FakeTransport:
    """Stand-in for RetryingTransport serving a paged feed and media files.

    ``pages`` are served under ``{"clips": [...]}``; pages past the end are
    empty. ``media`` maps a media URL to an HTTP status, an exception to
    raise or a ready response; unknown media URLs answer 200.
    """

    def __init__(
        self,
        pages: Optional[List[List[dict]]] = None,
        media: Optional[Dict[str, Outcome]] = None,
        feed_handler: Optional[Callable[[int], TransportResponse]] = None,
        delay: float = 0.0
    ):
        self.pages = pages or []
        self.media = media or {}
        self.feed_handler = feed_handler
        self.delay = delay
        self.calls: List[str] = []
        self.headers: List[Optional[dict]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def feed_calls(self) -> List[str]:
        return [url for url in self.calls if urlsplit(url).netloc == FEED_HOST]

    @property
    def media_calls(self) -> List[str]:
        return [url for url in self.calls if urlsplit(url).netloc == MEDIA_HOST]

    async def _enter(self, url, headers):
        self.calls.append(url)
        self.headers.append(headers)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        if self.delay:
            await asyncio.sleep(self.delay)

    def _media_response(self, url) -> TransportResponse:
        outcome = self.media.get(url, 200)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, TransportResponse):
            return outcome
        body = f"audio:{url}".encode() if outcome < 300 else b"denied"
        return TransportResponse(status=outcome, body=body)

    async def request(self, url, headers=None, method="GET", timeout=None) -> TransportResponse:
        await self._enter(url, headers)
        try:
            parts = urlsplit(url)
            if parts.netloc == FEED_HOST:
                page = int(parse_qs(parts.query)["page"][0])
                if self.feed_handler:
                    return self.feed_handler(page)
                clips = self.pages[page] if page < len(self.pages) else []
                return json_response({"clips": clips})
            return self._media_response(url)
        finally:
            self.in_flight -= 1

    async def download(self, url, write_body, headers=None, timeout=None) -> TransportResponse:
        await self._enter(url, headers)
        try:
            response = self._media_response(url)
            if not response.ok:
                return response
            written = await write_body(iter_chunks(response.body))
            return TransportResponse(status=response.status, bytes_written=written)
        finally:
            self.in_flight -= 1


async def iter_chunks(body: bytes, size: int = 4):
    for start in range(0, len(body), size):
        yield body[start:start + size]


def transport_failure(url: str) -> TransportError:
    return TransportError(f"Network error after 3 attempts: connection reset ({url})", attempts=3)


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def settings(temp_dir):
    """Settings with every delay switched off"""
    return Settings(
        data_dir=temp_dir / "data",
        api_base_url=f"https://{FEED_HOST}",
        page_delay_seconds=0,
        rate_limit_ms=0,
        initial_backoff_seconds=0,
        max_backoff_seconds=0,
        user_log_enabled=False,
    )
