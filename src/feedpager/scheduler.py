"""Scroll-triggered fetch scheduling.

The presentation layer wires its visibility observer to the callback returned
by :meth:`FetchScheduler.observe`. Each "near end" signal moves the feed
through a small state machine::

    IDLE --near end--> PENDING_DEBOUNCE --timer, has more--> FETCHING
                       PENDING_DEBOUNCE --near end--> PENDING_DEBOUNCE (timer restarts)
                       PENDING_DEBOUNCE --timer, no more--> EXHAUSTED
    FETCHING --done, has more--> IDLE
    FETCHING --done, no more--> EXHAUSTED
    FETCHING --failed--> IDLE
    FETCHING --cursor rejected--> STALLED

EXHAUSTED and STALLED are only left through :meth:`FetchScheduler.reset`. A
stalled feed keeps its pages but never sends the rejected cursor again. Any
other failed fetch is not retried in the background; the next near-end signal
or an explicit ``retry`` starts a new attempt from the same cursor. Within one
attempt, recoverable errors get a bounded number of backoff retries.

Must be driven from a running event loop: timers are asyncio tasks.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from feedpager.cache import FetchStatus
from feedpager.errors import InvalidCursorError
from feedpager.retry import retry_with_backoff

if TYPE_CHECKING:
    from feedpager.cache import PagedCacheManager
    from feedpager.config import PagerSettings

log = structlog.get_logger()

ErrorCallback = Callable[[str, Exception], None]


class ScheduleState(StrEnum):
    IDLE = "idle"
    PENDING_DEBOUNCE = "pending_debounce"
    FETCHING = "fetching"
    EXHAUSTED = "exhausted"
    STALLED = "stalled"


@dataclass
class _FeedSchedule:
    state: ScheduleState = ScheduleState.IDLE
    task: asyncio.Task[Any] | None = None  # debounce timer or explicit load in progress
    last_error: Exception | None = None


class FetchScheduler:
    def __init__(
        self,
        cache: PagedCacheManager,
        settings: PagerSettings,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._cache = cache
        self._debounce_seconds = settings.debounce_ms / 1000
        self._retry_attempts = settings.retry_attempts
        self._retry_backoff_ms = settings.retry_backoff_ms
        self._on_error = on_error
        self._schedules: dict[str, _FeedSchedule] = {}

    # ------------------------------------------------------------------
    # Registration and signals
    # ------------------------------------------------------------------

    def observe(self, feed: str) -> Callable[[bool], None]:
        """Register ``feed`` and return its "near end" callback."""
        self._schedules.setdefault(feed, _FeedSchedule())

        def near_end(visible: bool) -> None:
            self.on_proximity(feed, visible)

        return near_end

    def on_proximity(self, feed: str, near_end: bool) -> None:
        if not near_end:
            return
        schedule = self._schedules.get(feed)
        if schedule is None:
            log.debug("proximity_ignored", feed=feed, reason="not_observed")
            return
        if schedule.state in (
            ScheduleState.FETCHING,
            ScheduleState.EXHAUSTED,
            ScheduleState.STALLED,
        ):
            return

        if schedule.task is not None:
            schedule.task.cancel()
        schedule.state = ScheduleState.PENDING_DEBOUNCE
        schedule.task = asyncio.create_task(self._debounced_fetch(feed, schedule))

    # ------------------------------------------------------------------
    # Explicit intents
    # ------------------------------------------------------------------

    async def load_more(self, feed: str) -> FetchStatus:
        """Fetch the next page now, skipping the debounce timer.

        Errors propagate to the caller. The feed is registered if needed. The
        fetch runs as the feed's task, so ``reset`` and ``teardown`` cancel it
        like a scheduled one; the caller then gets ``SUPERSEDED``.
        """
        schedule = self._schedules.setdefault(feed, _FeedSchedule())
        if schedule.state is ScheduleState.EXHAUSTED:
            return FetchStatus.EXHAUSTED
        if schedule.state is ScheduleState.STALLED:
            return FetchStatus.CURSOR_LOST
        if schedule.state is ScheduleState.FETCHING:
            return FetchStatus.IN_FLIGHT
        if schedule.task is not None:
            schedule.task.cancel()

        schedule.state = ScheduleState.FETCHING
        task = asyncio.create_task(self._fetch(feed))
        schedule.task = task
        try:
            status = await task
        except asyncio.CancelledError:
            caller = asyncio.current_task()
            if self._is_current(feed, schedule):
                schedule.state = ScheduleState.IDLE
                raise
            if caller is not None and caller.cancelling():
                raise
            log.info("explicit_fetch_cancelled", feed=feed)
            return FetchStatus.SUPERSEDED
        except Exception as exc:
            if self._is_current(feed, schedule):
                self._record_failure(feed, schedule, exc)
            raise
        finally:
            if schedule.task is task:
                schedule.task = None

        if self._is_current(feed, schedule):
            self._settle_state(feed, schedule, status)
        return status

    async def retry(self, feed: str) -> FetchStatus:
        """Retry after a failed fetch, resuming from the last good cursor."""
        log.info("fetch_retry_requested", feed=feed)
        return await self.load_more(feed)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self, feed: str) -> None:
        """Drop cached pages and return the feed to IDLE."""
        schedule = self._schedules.pop(feed, None)
        if schedule is not None and schedule.task is not None:
            schedule.task.cancel()
        self._schedules[feed] = _FeedSchedule()
        self._cache.reset(feed)

    def teardown(self, feed: str) -> None:
        """Stop observing ``feed``: cancel timers and fetches, drop its cache state."""
        schedule = self._schedules.pop(feed, None)
        if schedule is not None and schedule.task is not None:
            schedule.task.cancel()
        self._cache.teardown(feed)
        log.debug("feed_unobserved", feed=feed)

    async def close(self) -> None:
        tasks = [s.task for s in self._schedules.values() if s.task is not None]
        for feed in list(self._schedules):
            self.teardown(feed)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def settle(self, feed: str) -> None:
        """Wait until ``feed`` has no pending timer or scheduled fetch."""
        while True:
            schedule = self._schedules.get(feed)
            task = schedule.task if schedule is not None else None
            if task is None or task.done():
                return
            await asyncio.wait({task})

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def state(self, feed: str) -> ScheduleState | None:
        schedule = self._schedules.get(feed)
        return schedule.state if schedule is not None else None

    def last_error(self, feed: str) -> Exception | None:
        schedule = self._schedules.get(feed)
        return schedule.last_error if schedule is not None else None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_current(self, feed: str, schedule: _FeedSchedule) -> bool:
        return self._schedules.get(feed) is schedule

    async def _fetch(self, feed: str) -> FetchStatus:
        return await retry_with_backoff(
            lambda: self._cache.fetch_next_page(feed),
            attempts=self._retry_attempts,
            backoff_ms=self._retry_backoff_ms,
            label=f"fetch_next_page:{feed}",
        )

    def _record_failure(self, feed: str, schedule: _FeedSchedule, exc: Exception) -> None:
        schedule.last_error = exc
        if isinstance(exc, InvalidCursorError):
            schedule.state = ScheduleState.STALLED
            log.warning("feed_stalled", feed=feed, cursor=exc.cursor)
        else:
            schedule.state = ScheduleState.IDLE

    def _notify(self, feed: str, exc: Exception) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(feed, exc)
        except Exception:
            log.exception("error_callback_failed", feed=feed)

    def _settle_state(self, feed: str, schedule: _FeedSchedule, status: FetchStatus) -> None:
        if status is FetchStatus.FETCHED:
            schedule.last_error = None
        if status is FetchStatus.CURSOR_LOST:
            schedule.state = ScheduleState.STALLED
        elif self._cache.has_more(feed):
            schedule.state = ScheduleState.IDLE
        else:
            schedule.state = ScheduleState.EXHAUSTED
            log.info("feed_exhausted", feed=feed)

    async def _debounced_fetch(self, feed: str, schedule: _FeedSchedule) -> None:
        try:
            await asyncio.sleep(self._debounce_seconds)

            if not self._cache.has_more(feed):
                schedule.state = ScheduleState.EXHAUSTED
                log.info("feed_exhausted", feed=feed)
                return
            if self._cache.cursor_lost(feed):
                schedule.state = ScheduleState.STALLED
                return
            if self._cache.is_fetching(feed):
                schedule.state = ScheduleState.IDLE
                return

            schedule.state = ScheduleState.FETCHING
            try:
                status = await self._fetch(feed)
            except Exception as exc:
                if not self._is_current(feed, schedule):
                    return
                self._record_failure(feed, schedule, exc)
                log.warning("scheduled_fetch_failed", feed=feed, error=str(exc))
                self._notify(feed, exc)
                return

            if self._is_current(feed, schedule):
                self._settle_state(feed, schedule, status)
        finally:
            if schedule.task is asyncio.current_task():
                schedule.task = None
