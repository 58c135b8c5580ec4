"""Cursor-driven enumeration over a resource kind's listing endpoint."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

import structlog

from domo_offboard.exceptions import EnumerationError
from domo_offboard.resources.base import Cursor, Page, ResourceRef

logger = structlog.get_logger(__name__)

PageFetcher = Callable[[Cursor], Awaitable[Page]]


class Paginator:
    """Drive a page-fetch function to exhaustion.

    A page whose row count is strictly less than the requested page size, or
    an empty page, is the terminal page. Backend-reported totals are never
    consulted. Listings without a page size are fetched exactly once;
    token-paged listings also stop when the backend hands back no next token.

    A Paginator can be iterated once. A failed page fetch raises
    EnumerationError and ends the enumeration; later pages are never skipped
    to.
    """

    def __init__(
        self,
        fetch_page: PageFetcher,
        page_size: int | None,
        token_paged: bool = False,
        kind_tag: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        if page_size is not None and page_size < 1:
            raise ValueError("page_size must be positive")
        self._fetch_page = fetch_page
        self.page_size = page_size
        self.token_paged = token_paged
        self.kind_tag = kind_tag
        self._cancel_event = cancel_event
        self._started = False
        self.fetch_count = 0
        self.cancelled = False
        self._logger = logger.bind(kind=kind_tag)

    async def pages(self) -> AsyncIterator[Page]:
        """Yield non-empty pages in cursor order."""
        if self._started:
            raise RuntimeError("Paginator has already been consumed")
        self._started = True

        cursor = Cursor(offset=0, page_size=self.page_size)
        while True:
            if self._cancel_event is not None and self._cancel_event.is_set():
                self.cancelled = True
                self._logger.info("Enumeration cancelled", offset=cursor.offset)
                return

            try:
                page = await self._fetch_page(cursor)
            except Exception as e:
                self._logger.error(
                    "Failed to fetch page",
                    offset=cursor.offset,
                    page_size=cursor.page_size,
                    error=str(e),
                )
                raise EnumerationError(
                    f"Failed to list {self.kind_tag or 'resources'} at offset {cursor.offset}: {e}",
                    kind_tag=self.kind_tag,
                ) from e
            self.fetch_count += 1

            self._logger.debug(
                "Fetched page",
                offset=cursor.offset,
                rows=page.raw_count,
                items=len(page.items),
            )

            if page.raw_count == 0:
                return

            yield page

            if self._is_last(page):
                return
            cursor = self._advance(cursor, page)

    async def __aiter__(self) -> AsyncIterator[ResourceRef]:
        async for page in self.pages():
            for item in page.items:
                yield item

    async def collect(self) -> list[ResourceRef]:
        """Enumerate everything into a list."""
        return [item async for item in self]

    def _is_last(self, page: Page) -> bool:
        if self.page_size is not None and page.raw_count < self.page_size:
            return True
        if self.token_paged:
            return not page.next_token
        return self.page_size is None

    def _advance(self, cursor: Cursor, page: Page) -> Cursor:
        return Cursor(
            offset=cursor.offset + (self.page_size or page.raw_count),
            page_size=self.page_size,
            token=page.next_token,
        )
