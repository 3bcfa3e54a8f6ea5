"""Cursor-paginated feed delivery: paged cache plus scroll-driven fetching."""

from __future__ import annotations

from feedpager.cache import FetchStatus, PagedCacheManager
from feedpager.errors import (
    ErrorCode,
    FeedPagerError,
    InvalidCursorError,
    ItemNotFoundError,
    RequestSupersededError,
    SourceRejectedError,
    SourceUnavailableError,
)
from feedpager.models import FeedView, Item, Page
from feedpager.protocol import PageSource
from feedpager.scheduler import FetchScheduler, ScheduleState

__all__ = [
    "ErrorCode",
    "FeedPagerError",
    "FeedView",
    "FetchScheduler",
    "FetchStatus",
    "InvalidCursorError",
    "Item",
    "ItemNotFoundError",
    "Page",
    "PageSource",
    "PagedCacheManager",
    "RequestSupersededError",
    "ScheduleState",
    "SourceRejectedError",
    "SourceUnavailableError",
]
