"""Suno library listing client."""

import asyncio
import json
import math
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urlencode

import aiohttp

from config.settings import Settings
from download.retry_manager import RetryManager, RetryingTransport, TransportResponse
from .models import LibraryItem
from .exceptions import RemoteApiError, UnrecognizedResponseError
from logs.logger import get_logger, log_page_fetched, log_early_stop
from utils.constants import DEFAULT_USER_AGENT, FEED_ITEM_KEYS, FEED_QUERY_FLAGS
from utils.helpers import truncate_string

logger = get_logger(__name__)


def parse_feed_page(data: Any) -> List[Dict[str, Any]]:
    """Extract the item records from one decoded listing page.

    Accepted shapes:
      * a bare JSON array of records
      * an object holding the array under ``clips``, ``songs``, ``data`` or
        ``items``; the first non-empty one wins, and an object whose
        recognised arrays are all empty is an empty page

    Args:
        data: Decoded JSON body

    Returns:
        List of raw records (possibly empty)

    Raises:
        UnrecognizedResponseError: If the body matches none of the shapes
    """
    if isinstance(data, list):
        return data

    if not isinstance(data, dict):
        raise UnrecognizedResponseError(
            f"Listing page is a {type(data).__name__}, expected an object or array",
            response_data=data
        )

    candidates = [key for key in FEED_ITEM_KEYS if isinstance(data.get(key), list)]
    if not candidates:
        raise UnrecognizedResponseError(
            f"Listing page has none of the expected fields {list(FEED_ITEM_KEYS)} "
            f"(got {sorted(data.keys())})",
            response_data=data
        )

    for key in candidates:
        if data[key]:
            return data[key]
    return []


class SunoClient:
    """Suno API client for paginated library listing."""

    def __init__(
        self,
        settings: Settings,
        credential: str,
        user: str,
        transport: Optional[RetryingTransport] = None
    ):
        """Initialize the Suno client.

        Args:
            settings: Application settings
            credential: Opaque bearer token
            user: Sanitized username, for logging
            transport: Optional pre-built transport (a session is created otherwise)
        """
        self.settings = settings
        self.credential = credential
        self.user = user
        self.transport = transport
        self.session: Optional[aiohttp.ClientSession] = None
        self.pages_fetched = 0

    async def __aenter__(self):
        """Async context manager entry."""
        await self._ensure_transport()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _ensure_transport(self) -> None:
        """Create an aiohttp session and transport unless one was injected."""
        if self.transport is None:
            timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={'User-Agent': DEFAULT_USER_AGENT}
            )
            self.transport = RetryingTransport(self.session, RetryManager(self.settings))

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self.session:
            await self.session.close()
            self.session = None
            self.transport = None

    def get_auth_headers(self) -> Dict[str, str]:
        """Bearer authorization header for the current credential."""
        return {'Authorization': f'Bearer {self.credential}'}

    def feed_url(self, page: int) -> str:
        """URL of one listing page."""
        query = urlencode({**FEED_QUERY_FLAGS, 'page': page})
        return f"{self.settings.api_base_url}{self.settings.feed_path}?{query}"

    async def fetch_page(self, page: int) -> List[LibraryItem]:
        """Fetch and parse one listing page.

        Args:
            page: Zero-based page number

        Returns:
            Items on the page

        Raises:
            RemoteApiError: On a non-2xx status or an unusable body
            TransportError: If the request never got a response
        """
        await self._ensure_transport()
        headers = {**self.get_auth_headers(), 'Content-Type': 'application/json'}
        response: TransportResponse = await self.transport.request(self.feed_url(page), headers=headers)
        self.pages_fetched += 1

        if not response.ok:
            body = truncate_string(response.text(), 500)
            logger.error(f"[{self.user}] Listing page {page} failed: HTTP {response.status} - {body}")
            raise RemoteApiError(
                f"Failed to fetch library (page {page}): {response.status} {response.reason}",
                status_code=response.status,
                response_data=body
            )

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise UnrecognizedResponseError(
                f"Listing page {page} is not valid JSON: {e}",
                response_data=truncate_string(response.text(), 500)
            ) from e

        return [LibraryItem.from_record(record) for record in parse_feed_page(data)]

    async def fetch_library(
        self,
        known_ids: Set[str],
        limit: Optional[int] = None,
        full_sync: bool = False
    ) -> List[LibraryItem]:
        """Paginate the remote library.

        Incremental listing stops after ``early_stop_threshold`` consecutive
        pages whose ids are all in ``known_ids``; the listing is newest first,
        so older pages hold nothing new. Full sync reads until an empty page.
        With a ``limit`` the page count is capped at ``ceil(limit / page_size)``
        and listing ends once ``limit`` items are collected.

        Args:
            known_ids: Ids already archived
            limit: Optional cap on collected items
            full_sync: Disable early stop

        Returns:
            Every item on the fetched pages, in listing order
        """
        logger.info(f"[{self.user}] Fetching library from Suno...")

        page_size = self.settings.page_size
        threshold = self.settings.early_stop_threshold
        max_pages = math.ceil(limit / page_size) if limit else None

        all_items: List[LibraryItem] = []
        page = 0
        consecutive_known_pages = 0

        while max_pages is None or page < max_pages:
            if page > 0 and self.settings.page_delay_seconds > 0:
                await asyncio.sleep(self.settings.page_delay_seconds)

            items = await self.fetch_page(page)
            if not items:
                logger.debug(f"[{self.user}] Page {page} is empty, end of listing")
                break

            all_items.extend(items)
            log_page_fetched(self.user, page, len(items), len(all_items))

            new_on_page = sum(1 for item in items if item.id not in known_ids)
            if full_sync:
                logger.debug(f"[{self.user}] Full sync: page {page} has {new_on_page} new items")
            elif known_ids:
                if new_on_page == 0:
                    consecutive_known_pages += 1
                    logger.info(
                        f"[{self.user}] Page {page} contains only existing content "
                        f"({consecutive_known_pages}/{threshold} consecutive)"
                    )
                    if consecutive_known_pages >= threshold:
                        log_early_stop(self.user, page, threshold)
                        break
                else:
                    consecutive_known_pages = 0
                    logger.info(f"[{self.user}] Page {page} contains {new_on_page} new items")

            page += 1

            if limit and len(all_items) >= limit:
                logger.debug(f"[{self.user}] Reached limit of {limit} items")
                break

        logger.info(f"[{self.user}] Found {len(all_items)} total items")
        return all_items
