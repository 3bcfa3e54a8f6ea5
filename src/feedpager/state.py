"""Session-wide application state.

One ``AppState`` is built per application session and passed by reference to
whatever needs feed access. It owns the data source, the single cache manager
and the scheduler; there are no module-level singletons.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from feedpager.cache import PagedCacheManager
from feedpager.scheduler import ErrorCallback, FetchScheduler
from feedpager.sources import HttpSource, MemorySource, SqliteSource, build_http_client

if TYPE_CHECKING:
    import httpx

    from feedpager.config import Settings
    from feedpager.protocol import PageSource

log = structlog.get_logger()


@dataclass
class AppState:
    settings: Settings
    source: PageSource
    cache: PagedCacheManager
    scheduler: FetchScheduler
    http_client: httpx.AsyncClient | None = None
    db: aiosqlite.Connection | None = None


def build_app_state(
    settings: Settings,
    source: PageSource,
    *,
    on_error: ErrorCallback | None = None,
) -> AppState:
    """Wire a cache manager and scheduler around an existing source."""
    cache = PagedCacheManager(source, settings.pager)
    scheduler = FetchScheduler(cache, settings.pager, on_error=on_error)
    return AppState(settings=settings, source=source, cache=cache, scheduler=scheduler)


@asynccontextmanager
async def create_app_state(
    settings: Settings,
    *,
    headers: dict[str, str] | None = None,
    on_error: ErrorCallback | None = None,
) -> AsyncIterator[AppState]:
    """Open the configured source and yield a fully wired ``AppState``.

    ``headers`` are passed to the HTTP client (e.g. authorization supplied by
    the surrounding application). Resources are closed on exit.
    """
    async with AsyncExitStack() as stack:
        source_settings = settings.source
        source: PageSource
        http_client = None
        db = None

        if source_settings.kind == "http":
            http_client = await stack.enter_async_context(
                build_http_client(source_settings, headers=headers)
            )
            source = HttpSource(http_client, source_settings.base_url)
        elif source_settings.kind == "sqlite":
            db_path = Path(source_settings.db_path).expanduser()
            db_path.parent.mkdir(parents=True, exist_ok=True)
            db = await stack.enter_async_context(aiosqlite.connect(db_path))
            sqlite_source = SqliteSource(db)
            await sqlite_source.init_db()
            source = sqlite_source
        else:
            source = MemorySource()

        state = build_app_state(settings, source, on_error=on_error)
        state.http_client = http_client
        state.db = db
        log.info("app_state_ready", source=source_settings.kind)
        try:
            yield state
        finally:
            await state.scheduler.close()
