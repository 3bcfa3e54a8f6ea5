"""Unit-specific fixtures (no I/O beyond in-memory SQLite)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import pytest

from feedpager.cache import PagedCacheManager
from feedpager.sources.memory import MemorySource
from feedpager.sources.sqlite import SqliteSource

if TYPE_CHECKING:
    from feedpager.config import PagerSettings
    from feedpager.models.feed import Item


@pytest.fixture()
def source(feed_items: list[Item]) -> MemorySource:
    """Memory source with the 25-item "global" feed."""
    return MemorySource({"global": feed_items})


@pytest.fixture()
def cache(source: MemorySource, pager_settings: PagerSettings) -> PagedCacheManager:
    return PagedCacheManager(source, pager_settings)


@pytest.fixture()
async def sqlite_source():
    """In-memory SQLite source for unit tests."""
    async with aiosqlite.connect(":memory:") as db:
        s = SqliteSource(db)
        await s.init_db()
        yield s
