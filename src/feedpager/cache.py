"""In-memory paged cache for cursor-paginated feeds.

One ``PagedCacheManager`` owns the state of every feed in a session. Each feed
keeps its pages in fetch order, the cursor for the next page and a
single-flight guard. All state changes happen synchronously between awaits on
the event loop, so the guard needs no lock: it is set before the source call
suspends and cleared once the result has been applied.

Memory is bounded by evicting whole pages from the oldest end. Forward
fetching only depends on the newest cursor, which eviction never touches.

Externally pushed items are only ever prepended to the first cached page, so
no stored cursor moves. Reconciliation never evicts; eviction runs only after
a fetched page is appended.

Fetch errors propagate unchanged after the guard is cleared. A cursor the
source rejects is never sent again; the feed stays put until it is reset. A
result that arrives after its feed was reset or torn down is discarded.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from feedpager.errors import (
    FeedPagerError,
    InvalidCursorError,
    ItemNotFoundError,
    RequestSupersededError,
)
from feedpager.models.feed import FeedView, Item, Page
from feedpager.protocol import is_after

if TYPE_CHECKING:
    from feedpager.config import PagerSettings
    from feedpager.protocol import PageSource

log = structlog.get_logger()


class FetchStatus(StrEnum):
    FETCHED = "fetched"
    IN_FLIGHT = "in_flight"  # no-op: another fetch for this feed is outstanding
    EXHAUSTED = "exhausted"  # no-op: the feed has no more pages
    SUPERSEDED = "superseded"  # result discarded after reset/teardown
    CURSOR_LOST = "cursor_lost"  # no-op: stored cursor was rejected; reset to resume


@dataclass
class FeedState:
    """Mutable per-feed state. Only PagedCacheManager writes to it."""

    pages: list[Page] = field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = True
    fetching: bool = False
    generation: int = 0
    evicted_pages: int = 0
    cursor_lost: bool = False

    def items(self) -> list[Item]:
        return [item for page in self.pages for item in page.items]


class PagedCacheManager:
    def __init__(self, source: PageSource, settings: PagerSettings) -> None:
        self._source = source
        self._page_size = settings.page_size
        self._max_cached_pages = settings.max_cached_pages
        self._feeds: dict[str, FeedState] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_view(self, feed: str) -> FeedView:
        """Flatten the cached pages of ``feed``. Never triggers I/O."""
        state = self._feeds.get(feed)
        if state is None:
            return FeedView(items=[], has_more=True, is_fetching_next=False)
        return FeedView(
            items=state.items(),
            has_more=state.has_more,
            is_fetching_next=state.fetching,
        )

    def has_more(self, feed: str) -> bool:
        state = self._feeds.get(feed)
        return state.has_more if state is not None else True

    def is_fetching(self, feed: str) -> bool:
        state = self._feeds.get(feed)
        return state.fetching if state is not None else False

    def feeds(self) -> list[str]:
        return list(self._feeds)

    def next_cursor(self, feed: str) -> str | None:
        state = self._feeds.get(feed)
        return state.next_cursor if state is not None else None

    def cursor_lost(self, feed: str) -> bool:
        state = self._feeds.get(feed)
        return state.cursor_lost if state is not None else False

    def page_count(self, feed: str) -> int:
        state = self._feeds.get(feed)
        return len(state.pages) if state is not None else 0

    def evicted_pages(self, feed: str) -> int:
        state = self._feeds.get(feed)
        return state.evicted_pages if state is not None else 0

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def fetch_next_page(self, feed: str) -> FetchStatus:
        """Fetch and append the next page of ``feed``.

        Returns immediately, without contacting the source, while another
        fetch for the same feed is outstanding, once the feed is exhausted, or
        after the source rejected the stored cursor. Only ``reset`` clears a
        lost cursor.
        """
        state = self._feeds.setdefault(feed, FeedState())
        if state.fetching:
            log.debug("fetch_skipped", feed=feed, reason="in_flight")
            return FetchStatus.IN_FLIGHT
        if not state.has_more:
            log.debug("fetch_skipped", feed=feed, reason="exhausted")
            return FetchStatus.EXHAUSTED
        if state.cursor_lost:
            log.debug("fetch_skipped", feed=feed, reason="cursor_lost")
            return FetchStatus.CURSOR_LOST

        state.fetching = True
        cursor = state.next_cursor
        log.debug("fetch_page_started", feed=feed, cursor=cursor, limit=self._page_size)

        try:
            page = await self._source.fetch_page(feed, cursor, self._page_size)
        except asyncio.CancelledError:
            state.fetching = False
            raise
        except Exception as exc:
            state.fetching = False
            if not self._is_current(feed, state):
                log.info("fetch_result_discarded", feed=feed, outcome="error")
                return FetchStatus.SUPERSEDED
            if isinstance(exc, InvalidCursorError):
                state.cursor_lost = True
            if isinstance(exc, FeedPagerError):
                log.warning(
                    "fetch_page_failed",
                    feed=feed,
                    cursor=cursor,
                    code=exc.code,
                    recoverable=exc.recoverable,
                )
            else:
                log.warning("fetch_page_failed", feed=feed, cursor=cursor, exc_info=True)
            raise

        state.fetching = False
        try:
            self._append(feed, state, page)
        except RequestSupersededError:
            log.info("fetch_result_discarded", feed=feed, outcome="page")
            return FetchStatus.SUPERSEDED
        return FetchStatus.FETCHED

    def _is_current(self, feed: str, state: FeedState) -> bool:
        return self._feeds.get(feed) is state

    def _append(self, feed: str, state: FeedState, page: Page) -> None:
        if not self._is_current(feed, state):
            raise RequestSupersededError(feed)

        state.pages.append(page)
        state.next_cursor = page.next_cursor
        state.has_more = page.has_more
        log.info(
            "fetch_page_complete",
            feed=feed,
            items=len(page.items),
            has_more=page.has_more,
            pages=len(state.pages),
        )
        self._evict(feed, state)

    def _evict(self, feed: str, state: FeedState) -> None:
        overflow = len(state.pages) - self._max_cached_pages
        if overflow <= 0:
            return
        del state.pages[:overflow]
        state.evicted_pages += overflow
        log.info("pages_evicted", feed=feed, evicted=overflow, retained=len(state.pages))

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def prepend_external_item(self, feed: str, item: Item) -> bool:
        """Add a pushed item to the head of the feed.

        Returns ``True`` if the item was added. Items already cached, items
        that would not sort before the current head, and pushes for feeds
        with no cached page yet are ignored.
        """
        state = self._feeds.get(feed)
        if state is None or not state.pages:
            log.debug("external_item_ignored", feed=feed, item_id=item.id, reason="no_pages")
            return False

        if any(cached.id == item.id for cached in state.items()):
            log.debug("external_item_ignored", feed=feed, item_id=item.id, reason="duplicate")
            return False

        head = state.pages[0]
        if head.items and not is_after(head.items[0], item):
            log.warning("external_item_ignored", feed=feed, item_id=item.id, reason="not_newest")
            return False

        state.pages[0] = head.model_copy(update={"items": [item, *head.items]})
        log.debug("external_item_prepended", feed=feed, item_id=item.id)
        return True

    # ------------------------------------------------------------------
    # Optimistic updates
    # ------------------------------------------------------------------

    async def apply_optimistic(
        self,
        feed: str,
        item_id: str,
        update: dict[str, Any],
        commit: Callable[[Item], Awaitable[object]],
    ) -> Item:
        """Replace a cached item with an updated copy while ``commit`` runs.

        If ``commit`` raises, the original item is put back wherever it now
        sits and the error propagates. Items pushed or pages appended while
        the commit was in flight are kept.
        """
        if "id" in update or "created_at" in update:
            raise ValueError("optimistic updates must not change id or created_at")

        state = self._feeds.get(feed)
        located = self._locate(state, item_id) if state is not None else None
        if state is None or located is None:
            raise ItemNotFoundError(feed, item_id)

        page_index, item_index = located
        original = state.pages[page_index].items[item_index]
        new_item = original.model_copy(update=update)
        self._swap(state, page_index, item_index, new_item)

        try:
            await commit(new_item)
        except BaseException:
            self._restore(feed, state, original, new_item)
            raise
        return new_item

    @staticmethod
    def _locate(state: FeedState, item_id: str) -> tuple[int, int] | None:
        for page_index, page in enumerate(state.pages):
            for item_index, item in enumerate(page.items):
                if item.id == item_id:
                    return page_index, item_index
        return None

    @staticmethod
    def _swap(state: FeedState, page_index: int, item_index: int, item: Item) -> None:
        page = state.pages[page_index]
        items = list(page.items)
        items[item_index] = item
        state.pages[page_index] = page.model_copy(update={"items": items})

    def _restore(self, feed: str, state: FeedState, original: Item, tentative: Item) -> None:
        # Pages may have been rebuilt or shifted while the commit ran, so the
        # tentative item is looked up again rather than its old position.
        if not self._is_current(feed, state):
            return
        located = self._locate(state, original.id)
        if located is None:
            log.info("optimistic_rollback_skipped", feed=feed, reason="item_evicted")
            return
        page_index, item_index = located
        if state.pages[page_index].items[item_index] is not tentative:
            log.info("optimistic_rollback_skipped", feed=feed, reason="item_replaced")
            return
        self._swap(state, page_index, item_index, original)
        log.info("optimistic_update_rolled_back", feed=feed, item_id=original.id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self, feed: str) -> None:
        """Drop all pages of ``feed`` and start again from the head.

        A fetch still outstanding for the old state is discarded on arrival.
        """
        previous = self._feeds.get(feed)
        generation = previous.generation + 1 if previous is not None else 0
        self._feeds[feed] = FeedState(generation=generation)
        log.info("feed_reset", feed=feed, generation=generation)

    def teardown(self, feed: str) -> None:
        if self._feeds.pop(feed, None) is not None:
            log.info("feed_torn_down", feed=feed)
